from datetime import datetime, timezone

import pytest

from greenhouse.database import Database
from greenhouse.errors import ConcurrentModification, NotEnoughSlots, OutOfRange, UnitNotEmpty
from greenhouse.models import OccupancyRateModule, OccupancyRateUnit
from greenhouse.modules.occupancy_rate import commit_module, find_module


def make_module(*units):
    module = OccupancyRateModule(name="Cultivation carts", groups=[])
    for name, slots in units:
        module.add_unit(name, slots)
    return module


def values(unit):
    return [element.value for element in unit.elements]


def test_fill_pads_with_empty_elements():
    unit = OccupancyRateUnit(name="Cart", slots=3)
    unit.fill()

    assert values(unit) == [None, None, None]
    assert [element.position for element in unit.elements] == [0, 1, 2]
    assert unit.validate_slots()

    unit.slots = 2
    assert not unit.validate_slots()


def test_rate_is_share_of_non_empty_elements():
    module = make_module(("Cart", 4))
    unit = module.get_unit(0, 0)
    module.edit_element(0, 0, 1, "Basil", "sown on monday")
    module.edit_element(0, 0, 3, "Mint")

    rate = unit.compute_rate(datetime(2024, 5, 1, tzinfo=timezone.utc))

    assert rate.value == 0.5
    assert unit.rates == [rate]


def test_compute_rates_covers_every_unit_of_every_group():
    module = make_module(("A", 2), ("B", 1))
    module.edit_element(1, 0, 0, "Lettuce")

    rates = module.compute_rates()

    assert [(rate["group"], rate["unit"], rate["rate"].value) for rate in rates] == [(0, 0, 0.0), (1, 0, 1.0)]


def test_add_unit_to_existing_or_new_group():
    module = make_module(("A", 1))

    module.add_unit("B", 2, group=0)
    module.add_unit("C", 2, group=-1)

    assert [[unit.name for unit in group] for group in module.grouped_units] == [["A", "B"], ["C"]]
    with pytest.raises(OutOfRange) as exc:
        module.add_unit("D", 2, group=2)
    assert exc.value.error == "Group out of range"


def test_resize_keeps_non_empty_elements_then_pads():
    module = make_module(("Cart", 4))
    module.edit_element(0, 0, 1, "Basil")
    module.edit_element(0, 0, 3, "Mint")
    unit = module.get_unit(0, 0)

    module.resize_unit(0, 0, 3)

    assert values(unit) == ["Basil", "Mint", None]
    assert [element.position for element in unit.elements] == [0, 1, 2]
    assert unit.slots == 3


def test_resize_below_occupied_count_is_rejected():
    module = make_module(("Cart", 2))
    module.edit_element(0, 0, 0, "Basil")
    module.edit_element(0, 0, 1, "Mint")

    with pytest.raises(NotEnoughSlots):
        module.resize_unit(0, 0, 1)
    assert module.get_unit(0, 0).slots == 2


def test_remove_requires_all_elements_empty():
    module = make_module(("Cart", 2))
    module.edit_element(0, 0, 0, "Basil")

    with pytest.raises(UnitNotEmpty):
        module.remove_unit(0, 0)

    module.edit_element(0, 0, 0, "")
    module.remove_unit(0, 0)
    assert module.grouped_units == [[]]


def test_move_unit_between_groups():
    module = make_module(("A", 1), ("B", 1))

    module.move_unit(0, 0, 1)

    assert [[unit.name for unit in group] for group in module.grouped_units] == [[], ["B", "A"]]


def test_indexes_are_checked_before_mutation():
    module = make_module(("A", 1))

    with pytest.raises(OutOfRange) as exc:
        module.move_unit(0, 0, 3)
    assert exc.value.error == "Destination group out of range"

    with pytest.raises(OutOfRange) as exc:
        module.move_unit(4, 0, 0)
    assert exc.value.error == "Source group out of range"

    with pytest.raises(OutOfRange) as exc:
        module.edit_element(0, 0, 5, "Basil")
    assert exc.value.error == "Element out of range"

    with pytest.raises(OutOfRange) as exc:
        module.remove_unit(0, 1)
    assert exc.value.error == "Unit out of range"
    assert len(module.grouped_units[0]) == 1


def test_stale_module_write_is_rejected(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'occupancy.db'}")
    database.create_all()
    with database.session() as db:
        db.add(OccupancyRateModule(name="Farmbot", groups=[]))
        db.commit()

    with database.session() as first, database.session() as second:
        mine = find_module(first, "Farmbot")
        theirs = find_module(second, "Farmbot")

        mine.add_unit("Bed", 2)
        commit_module(first, mine)

        theirs.add_unit("Other bed", 2)
        with pytest.raises(ConcurrentModification):
            commit_module(second, theirs)

    with database.session() as db:
        assert [[unit.name for unit in group] for group in find_module(db, "Farmbot").grouped_units] == [["Bed"]]
    database.dispose()
