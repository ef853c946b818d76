"""
Occupancy rates of the growing modules

Each module is made of groups of units; a unit has a fixed number of slots
holding elements (a plant, a fish tank...). The rate of a unit is the share
of its slots holding a non-empty element, computed every hour.
"""
from datetime import datetime, timezone
from typing import Annotated, Callable, List, Optional

from fastapi import Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from greenhouse.core.module import Module
from greenhouse.core.task import Task
from greenhouse.database import get_db
from greenhouse.errors import ConcurrentModification, NotFound
from greenhouse.models import OccupancyRateModule
from greenhouse.schemas import ModuleOut, dump_all


class ModuleQuery(BaseModel):
    name: str


class AddUnitQuery(BaseModel):
    module: str
    name: str
    slots: int = Field(ge=1)
    group: Optional[int] = Field(default=None, ge=-1, description="Existing group index, -1 or absent for a new group")


class UnitQuery(BaseModel):
    module: str
    group: int
    unit: int


class MoveUnitQuery(UnitQuery):
    to: int


class ChangeSlotsQuery(UnitQuery):
    slots: int = Field(ge=1)


class EditElementQuery(UnitQuery):
    element: int
    value: Optional[str] = None
    comment: Optional[str] = None


def find_module(db: Session, name: str) -> OccupancyRateModule:
    module = db.query(OccupancyRateModule).filter(OccupancyRateModule.name == name).first()
    if module is None:
        raise NotFound(f"No module found with name '{name}'", error="No module found")
    return module


def commit_module(db: Session, module: OccupancyRateModule) -> None:
    """Commit a module mutation, a stale version means another writer saved first."""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise ConcurrentModification(
            f"Module '{module.name}' was modified by another request, please reload it and retry"
        )


class OccupancyModule(Module):
    name = "OccupancyRateModule"

    def __init__(self, app):
        super().__init__(app)

        self.register_task("0 0 * * * *", self.compute_rates)

        self.http("GET", "/getOCModule", self.get_oc_module)
        self.http("GET", "/getOCModules", self.get_oc_modules)
        self.http("POST", "/addOCUnit", self.add_unit)
        self.http("PUT", "/moveOCUnit", self.move_unit)
        self.http("PUT", "/changeOCUnitSlots", self.change_unit_slots)
        self.http("DELETE", "/removeOCUnit", self.remove_unit)
        self.http("PUT", "/editOCElement", self.edit_element)

    async def init(self) -> None:
        with self.session() as db:
            existing = {name for (name,) in db.query(OccupancyRateModule.name)}
            for name in self.settings.occupancy_modules:
                if name not in existing:
                    db.add(OccupancyRateModule(name=name, groups=[]))
                    self.logger.info(f"Occupancy rate module '{name}' created")
            db.commit()

    def compute_rates(self, task: Optional[Task] = None) -> int:
        """Append the current rate of every unit to its history; returns the number of rates."""
        date = datetime.now(timezone.utc)
        count = 0
        with self.session() as db:
            for module in db.query(OccupancyRateModule).all():
                rates = module.compute_rates(date)
                count += len(rates)
                self.logger.debug(f"{len(rates)} rate(s) computed for module '{module.name}'")
            db.commit()
        self.logger.info(f"{count} occupancy rate(s) computed")
        return count

    def _mutate(self, db: Session, name: str, mutation: Callable[[OccupancyRateModule], object]) -> dict:
        module = find_module(db, name)
        mutation(module)
        commit_module(db, module)
        return {"message": "success", "module": ModuleOut.model_validate(module).dump()}

    # ---- Routes -----------------------------------------------------------

    def get_oc_module(self, query: Annotated[ModuleQuery, Query()], db: Session = Depends(get_db)):
        module = find_module(db, query.name)
        return {"message": "success", "module": ModuleOut.model_validate(module).dump()}

    def get_oc_modules(self, db: Session = Depends(get_db)):
        modules: List[OccupancyRateModule] = db.query(OccupancyRateModule).order_by(OccupancyRateModule.id).all()
        return {"message": "success", "modules": dump_all(ModuleOut, modules)}

    def add_unit(self, query: Annotated[AddUnitQuery, Query()], db: Session = Depends(get_db)):
        return self._mutate(db, query.module, lambda module: module.add_unit(query.name, query.slots, query.group))

    def move_unit(self, query: Annotated[MoveUnitQuery, Query()], db: Session = Depends(get_db)):
        return self._mutate(db, query.module, lambda module: module.move_unit(query.group, query.unit, query.to))

    def change_unit_slots(self, query: Annotated[ChangeSlotsQuery, Query()], db: Session = Depends(get_db)):
        return self._mutate(
            db, query.module, lambda module: module.resize_unit(query.group, query.unit, query.slots)
        )

    def remove_unit(self, query: Annotated[UnitQuery, Query()], db: Session = Depends(get_db)):
        return self._mutate(db, query.module, lambda module: module.remove_unit(query.group, query.unit))

    def edit_element(self, query: Annotated[EditElementQuery, Query()], db: Session = Depends(get_db)):
        """Set the value and comment of an element, empty strings clear them."""
        return self._mutate(
            db,
            query.module,
            lambda module: module.edit_element(query.group, query.unit, query.element, query.value, query.comment),
        )
