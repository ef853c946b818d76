"""Occupancy-rate models: Module -> groups -> Unit -> Element, with Rate history.

Units live in their own table keyed by id. A module only keeps the ordering
of its groups as a list of lists of unit ids, so removing or moving a unit
never shifts the identity of another one. Every mutation goes through the
module, which bumps its version so that concurrent writers are detected.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import relationship

from greenhouse.database import Base
from greenhouse.errors import NotEnoughSlots, OutOfRange, UnitNotEmpty


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OccupancyRateElement(Base):
    __tablename__ = "occupancy-rate-elements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    unit_id = Column(Uuid, ForeignKey("occupancy-rate-units.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    value = Column(String(255), nullable=True)      # None means empty slot
    comment = Column(Text, nullable=True)

    @property
    def is_empty(self) -> bool:
        return self.value is None


class OccupancyRateRate(Base):
    __tablename__ = "occupancy-rate-rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    unit_id = Column(Uuid, ForeignKey("occupancy-rate-units.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(DateTime(timezone=True), nullable=False, default=_now)
    value = Column(Float, nullable=False)   # 0..1


class OccupancyRateUnit(Base):
    __tablename__ = "occupancy-rate-units"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Integer, ForeignKey("occupancy-rate-modules.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    slots = Column(Integer, nullable=False)

    module = relationship("OccupancyRateModule", back_populates="units")
    elements = relationship(
        "OccupancyRateElement",
        order_by="OccupancyRateElement.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )
    rates = relationship(
        "OccupancyRateRate",
        order_by="OccupancyRateRate.id",
        cascade="all, delete-orphan",
    )

    def __init__(self, **kwargs):
        # The id is needed before flush to reference the unit from its group
        kwargs.setdefault("id", uuid.uuid4())
        super().__init__(**kwargs)

    @property
    def occupied_elements(self) -> List[OccupancyRateElement]:
        return [element for element in self.elements if not element.is_empty]

    def fill(self) -> None:
        """Pad the unit with empty elements up to its slot count."""
        while len(self.elements) < self.slots:
            self.elements.append(OccupancyRateElement(value=None, comment=None))

    def validate_slots(self) -> bool:
        return len(self.elements) <= self.slots

    def compute_rate(self, date: Optional[datetime] = None) -> OccupancyRateRate:
        """Compute the current occupancy rate and append it to the history."""
        rate = OccupancyRateRate(date=date or _now(), value=len(self.occupied_elements) / self.slots)
        self.rates.append(rate)
        return rate

    def resize(self, slots: int) -> None:
        """Change the slot count, keeping only non-empty elements then re-padding."""
        occupied = self.occupied_elements
        if len(occupied) > slots:
            raise NotEnoughSlots(
                f"There are {len(occupied)} non empty elements, please remove their value before removing slots"
            )
        for element in [element for element in self.elements if element.is_empty]:
            self.elements.remove(element)
        self.elements.reorder()
        self.slots = slots
        self.fill()


class OccupancyRateModule(Base):
    __tablename__ = "occupancy-rate-modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False, unique=True, index=True)
    groups = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    units = relationship("OccupancyRateUnit", back_populates="module", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    # ---- Lookups ------------------------------------------------------------

    @property
    def group_list(self) -> List[List[str]]:
        return [list(group) for group in (self.groups or [])]

    @property
    def grouped_units(self) -> List[List[OccupancyRateUnit]]:
        by_id = {str(unit.id): unit for unit in self.units}
        return [[by_id[unit_id] for unit_id in group] for group in self.group_list]

    def _check_group(self, group: int, error: str = "Group out of range") -> List[str]:
        groups = self.group_list
        if not 0 <= group < len(groups):
            raise OutOfRange(
                f"Group index {group} is out of range ({len(groups)} groups for the module)",
                error=error,
            )
        return groups[group]

    def get_unit(self, group: int, index: int, group_error: str = "Group out of range") -> OccupancyRateUnit:
        unit_ids = self._check_group(group, group_error)
        if not 0 <= index < len(unit_ids):
            raise OutOfRange(
                f"Group index {group} has only {len(unit_ids)} units, "
                f"you are trying to get out of range unit id {index}",
                error="Unit out of range",
            )
        return next(unit for unit in self.units if str(unit.id) == unit_ids[index])

    # ---- Mutations ----------------------------------------------------------

    def touch(self) -> None:
        self.updated_at = _now()

    def add_unit(self, name: str, slots: int, group: Optional[int] = None) -> OccupancyRateUnit:
        """Add a pre-filled unit to an existing group, or to a new group if group is None or -1."""
        if group is not None and group != -1:
            self._check_group(group)

        unit = OccupancyRateUnit(name=name, slots=slots)
        unit.fill()
        self.units.append(unit)

        groups = self.group_list
        if group is None or group == -1:
            groups.append([str(unit.id)])
        else:
            groups[group].append(str(unit.id))
        self.groups = groups
        self.touch()
        return unit

    def move_unit(self, group: int, index: int, to: int) -> OccupancyRateUnit:
        unit = self.get_unit(group, index, group_error="Source group out of range")
        self._check_group(to, error="Destination group out of range")

        groups = self.group_list
        groups[group].pop(index)
        groups[to].append(str(unit.id))
        self.groups = groups
        self.touch()
        return unit

    def resize_unit(self, group: int, index: int, slots: int) -> OccupancyRateUnit:
        unit = self.get_unit(group, index)
        unit.resize(slots)
        self.touch()
        return unit

    def remove_unit(self, group: int, index: int) -> OccupancyRateUnit:
        unit = self.get_unit(group, index)
        occupied = unit.occupied_elements
        if occupied:
            raise UnitNotEmpty(
                f"There are {len(occupied)} non empty elements, please remove their value before removing the unit"
            )

        groups = self.group_list
        groups[group].pop(index)
        self.groups = groups
        self.units.remove(unit)
        self.touch()
        return unit

    def edit_element(
        self,
        group: int,
        index: int,
        element: int,
        value: Optional[str] = None,
        comment: Optional[str] = None,
    ) -> OccupancyRateElement:
        unit = self.get_unit(group, index)
        if not 0 <= element < len(unit.elements):
            raise OutOfRange(
                f"Unit has only {len(unit.elements)} elements, "
                f"you are trying to get out of range element id {element}",
                error="Element out of range",
            )

        target = unit.elements[element]
        target.value = value or None
        target.comment = comment or None
        self.touch()
        return target

    def compute_rates(self, date: Optional[datetime] = None) -> List[dict]:
        """Compute the occupancy rate of every unit of every group."""
        date = date or _now()
        rates = []
        for group_index, group in enumerate(self.grouped_units):
            for unit_index, unit in enumerate(group):
                rates.append({"group": group_index, "unit": unit_index, "rate": unit.compute_rate(date)})
        self.touch()
        return rates
