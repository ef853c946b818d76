import asyncio
from datetime import datetime, timedelta, timezone

from greenhouse.services.farmbot import log_day, summarize_day

NOW = datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)


def log(message, updated_at="2024-05-01T10:00:00Z", type="info", **extra):
    return {"message": message, "type": type, "updated_at": updated_at, **extra}


def test_log_day_uses_utc():
    assert log_day(log("x", "2024-05-01T23:30:00-02:00")).isoformat() == "2024-05-02"
    assert log_day(log("x", updated_at=None)) is None
    assert log_day(log("x", updated_at="not a date")) is None


def test_summarize_day_pairs_starts_and_completions():
    logs = [
        log("Starting Water plants"),
        log("Completed Water plants"),
        log("Starting Water plants"),
        log("Starting Weed detection"),
        # Yesterday, ignored
        log("Starting Weed detection", "2024-04-30T10:00:00Z"),
        log("Completed Weed detection", "2024-04-30T10:05:00Z"),
    ]

    sumup = summarize_day(["Water plants", "Weed detection", "Mount tool"], logs, NOW)

    assert sumup.date == NOW
    assert sumup.completed_sequences == ["Water plants"]
    assert sumup.uncompleted_sequences == ["Water plants", "Weed detection"]
    assert sumup.error_logs == []


def test_summarize_day_keeps_error_logs():
    logs = [
        log("Movement failed", type="error", x=10, y=20, z=0),
        log("Movement failed yesterday", "2024-04-30T10:00:00Z", type="error"),
    ]

    sumup = summarize_day([], logs, NOW)

    assert sumup.error_logs == [
        {"type": "error", "message": "Movement failed", "timestamp": "2024-05-01T10:00:00Z", "x": 10, "y": 20, "z": 0}
    ]


def test_daily_sumup_task_and_route(client, application, farmbot_api):
    today = datetime.now(timezone.utc).isoformat()
    farmbot_api.routes["/api/sequences"] = [{"id": 1, "name": "Water plants"}]
    farmbot_api.routes["/api/logs"] = [
        log("Starting Water plants", today),
        log("Completed Water plants", today),
        log("Tool not found", today, type="error"),
    ]

    saved = asyncio.run(application.get_module("FarmbotLogsModule").save_daily_sumup())

    assert saved["completedSequences"] == ["Water plants"]
    assert farmbot_api.requests[0].headers["Authorization"] == "farmbot-token"

    resp = client.get("/getFarmbotDailySumUp")
    assert resp.status_code == 200
    [sumup] = resp.json()
    assert sumup["completedSequences"] == ["Water plants"]
    assert sumup["uncompletedSequences"] == []
    assert sumup["errorLogs"][0]["message"] == "Tool not found"

    until = int((datetime.now(timezone.utc) - timedelta(days=1)).timestamp())
    resp = client.get("/getFarmbotDailySumUp", params={"until": until})
    assert resp.status_code == 404
    assert resp.json()["error"] == "No records"


def test_daily_sumup_api_error_is_logged(application, caplog):
    assert asyncio.run(application.get_module("FarmbotLogsModule").save_daily_sumup()) is None
    assert "An error happened while fetching FarmBot API" in caplog.text
