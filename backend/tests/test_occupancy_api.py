"""Occupancy rate endpoints, through the HTTP router."""


def add_unit(client, module="Farmbot", name="Bed", slots=2, group=None):
    params = {"module": module, "name": name, "slots": slots}
    if group is not None:
        params["group"] = group
    return client.post("/addOCUnit", params=params)


def test_configured_modules_are_created_empty(client):
    resp = client.get("/getOCModule", params={"name": "Farmbot"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "success"
    assert body["module"]["name"] == "Farmbot"
    assert body["module"]["units"] == []

    modules = client.get("/getOCModules").json()["modules"]
    assert [module["name"] for module in modules] == ["Aquaponic greenhouse", "Cultivation carts", "Farmbot"]


def test_missing_and_unknown_module(client):
    resp = client.get("/getOCModule")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing arguments"
    assert "name" in resp.json()["message"]

    resp = client.get("/getOCModule", params={"name": "Greenhouse 2"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "No module found"


def test_add_unit_creates_prefilled_unit_in_new_group(client):
    resp = add_unit(client, slots=3)

    assert resp.status_code == 200
    module = resp.json()["module"]
    assert module["version"] == 2
    [[unit]] = module["units"]
    assert unit["name"] == "Bed"
    assert unit["slots"] == 3
    assert unit["elements"] == [{"value": None, "comment": None}] * 3
    assert unit["rates"] == []

    module = add_unit(client, name="Second bed", group=0).json()["module"]
    assert [[unit["name"] for unit in group] for group in module["units"]] == [["Bed", "Second bed"]]


def test_add_unit_validates_arguments(client):
    resp = add_unit(client, group=1)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Group out of range"

    resp = add_unit(client, slots=0)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid arguments"

    resp = client.post("/addOCUnit", params={"module": "Farmbot", "name": "Bed"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing arguments"


def test_edit_resize_and_remove_flow(client):
    add_unit(client, slots=2)

    resp = client.put(
        "/editOCElement",
        params={"module": "Farmbot", "group": 0, "unit": 0, "element": 1, "value": "Tomato", "comment": "row 2"},
    )
    assert resp.status_code == 200
    [[unit]] = resp.json()["module"]["units"]
    assert unit["elements"][1] == {"value": "Tomato", "comment": "row 2"}

    resp = client.put("/changeOCUnitSlots", params={"module": "Farmbot", "group": 0, "unit": 0, "slots": 1})
    assert resp.status_code == 200
    [[unit]] = resp.json()["module"]["units"]
    assert unit["elements"] == [{"value": "Tomato", "comment": "row 2"}]

    resp = client.delete("/removeOCUnit", params={"module": "Farmbot", "group": 0, "unit": 0})
    assert resp.status_code == 409
    assert resp.json()["error"] == "No empty elements remaining"

    client.put("/editOCElement", params={"module": "Farmbot", "group": 0, "unit": 0, "element": 0, "value": ""})
    resp = client.delete("/removeOCUnit", params={"module": "Farmbot", "group": 0, "unit": 0})
    assert resp.status_code == 200
    assert resp.json()["module"]["units"] == [[]]


def test_change_slots_rejects_losing_elements(client):
    add_unit(client, slots=2)
    for element in (0, 1):
        client.put(
            "/editOCElement",
            params={"module": "Farmbot", "group": 0, "unit": 0, "element": element, "value": "Basil"},
        )

    resp = client.put("/changeOCUnitSlots", params={"module": "Farmbot", "group": 0, "unit": 0, "slots": 1})

    assert resp.status_code == 409
    assert resp.json()["error"] == "Not enough slots for the current elements"
    [[unit]] = client.get("/getOCModule", params={"name": "Farmbot"}).json()["module"]["units"]
    assert unit["slots"] == 2


def test_move_unit(client):
    add_unit(client, name="A")
    add_unit(client, name="B")

    resp = client.put("/moveOCUnit", params={"module": "Farmbot", "group": 0, "unit": 0, "to": 1})
    assert resp.status_code == 200
    assert [[unit["name"] for unit in group] for group in resp.json()["module"]["units"]] == [[], ["B", "A"]]

    resp = client.put("/moveOCUnit", params={"module": "Farmbot", "group": 1, "unit": 0, "to": 2})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Destination group out of range"


def test_compute_rates_task(client, application):
    add_unit(client, module="Cultivation carts", name="Cart", slots=2)
    client.put(
        "/editOCElement",
        params={"module": "Cultivation carts", "group": 0, "unit": 0, "element": 0, "value": "Lettuce"},
    )

    count = application.get_module("OccupancyRateModule").compute_rates()

    assert count == 1
    [[unit]] = client.get("/getOCModule", params={"name": "Cultivation carts"}).json()["module"]["units"]
    assert [rate["value"] for rate in unit["rates"]] == [0.5]
