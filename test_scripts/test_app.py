import pytest

from app import create_app
from ble_manager import SensorPipeline
from config import SensorConfig

PAYLOAD = '{"distance":12,"flux":5,"temperature":21}'


@pytest.fixture
def pipeline(tmp_path):
    return SensorPipeline(SensorConfig(data_dir=str(tmp_path)))


@pytest.fixture
def client(pipeline):
    app = create_app(pipeline)
    app.config["TESTING"] = True
    return app.test_client()


def test_home_lists_endpoints(client):
    body = client.get("/").get_json()
    assert "/status" in body["endpoints"]


def test_status_before_any_data(client):
    body = client.get("/status").get_json()
    assert body["phase"] == "idle"
    assert body["connected"] is False
    assert body["address"] is None
    assert body["status_text"] == "Scanning for Sensor..."
    assert body["recording"] is False
    assert body["latest"] is None


def test_reading_waits_for_data(client):
    body = client.get("/reading").get_json()
    assert body == {"reading": None, "message": "Waiting for data..."}


def test_reading_reports_latest(client, pipeline):
    pipeline.recorder.on_payload(PAYLOAD)
    body = client.get("/reading").get_json()
    assert body["reading"]["distance"] == 12
    assert body["reading"]["flux"] == 5
    assert body["reading"]["temperature"] == 21
    assert "timeStamp" in body["reading"]
    assert body["raw"].startswith('{"distance":12')


def test_history_limit(client, pipeline):
    for n in range(5):
        pipeline.recorder.on_payload('{"distance":%d,"flux":0,"temperature":0}' % n)

    body = client.get("/history?limit=2").get_json()
    assert body["count"] == 2
    assert [r["distance"] for r in body["readings"]] == [3, 4]

    assert client.get("/history?limit=-1").status_code == 400


def test_recording_toggle(client, pipeline):
    assert client.post("/recording/start").get_json() == {"recording": True}
    assert pipeline.recorder.recording
    assert client.get("/status").get_json()["recording"] is True

    assert client.post("/recording/stop").get_json() == {"recording": False}
    assert not pipeline.recorder.recording


def test_recording_routes_reject_get(client):
    assert client.get("/recording/start").status_code == 405
