# tests/test_api.py
import pytest
from fastapi.testclient import TestClient

from dealflow.main import app

CATALOG = [
    {"brand": "Apple", "model": "iPhone 14", "storage": "128GB",
     "prices": {"A": 500, "B+": 460, "B": 420, "C": 350, "D": 250, "DOA": 80}},
]

LISTINGS = [
    {"platform": "craigslist", "listing_url": "https://cl.example/1", "title": "iPhone 14 128GB unlocked",
     "description": "Good shape, battery health 91%", "asking_price": "$250", "raw_condition": "good",
     "seller_name": "Sam Reed", "seller_contact": "sam@example.com"},
    {"platform": "craigslist", "listing_url": "https://cl.example/2", "title": "iPhone 14 128GB",
     "description": "icloud locked", "asking_price": 80},
]


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


def _load(client):
    assert client.put("/catalog", json=CATALOG).json() == {"status": "ok", "rows": 1}
    assert client.post("/listings", json=LISTINGS).json()["counts"]["added"] == 2
    return client.post("/pipeline/run").json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_settings_are_seeded_and_editable(client):
    settings = client.get("/settings").json()
    assert settings["TARGET_MARGIN"] == "0.25"
    updated = client.put("/settings", json={"HOT_SELLER_MIN_DEALS": 2}).json()
    assert updated["HOT_SELLER_MIN_DEALS"] == "2"


def test_catalog_round_trip(client):
    client.put("/catalog", json=CATALOG)
    rows = client.get("/catalog").json()
    assert rows[0]["model"] == "iPhone 14"
    assert rows[0]["prices"]["B"] == 420


def test_catalog_rejects_unknown_grade(client):
    bad = [dict(CATALOG[0], prices={"E": 10})]
    assert client.put("/catalog", json=bad).status_code == 422


def test_run_pipeline_and_read_results(client):
    report = _load(client)
    assert report["verdicts"] == 1
    assert [s["stage"] for s in report["stages"]][-1] == "verdicts"

    verdicts = client.get("/verdicts").json()
    assert len(verdicts) == 1
    assert verdicts[0]["rank"] == 1
    assert verdicts[0]["title"] == "iPhone 14 128GB unlocked"

    devices = client.get("/devices", params={"deal_class": "PASS"}).json()
    assert [d["final_grade"] for d in devices] == ["BLACKLISTED"]

    audit = client.get("/audit", params={"stage": "grading"}).json()
    assert audit[0]["summary"].startswith("Graded 2 devices")


def test_device_detail_patch_and_checklist(client):
    _load(client)
    device_id = client.get("/devices").json()[0]["device_id"]

    res = client.patch(f"/devices/{device_id}", json={"manual_grade": "A", "distance_miles": 40})
    assert res.status_code == 200
    assert res.json()["manual_grade"] == "A"

    client.post("/pipeline/run")
    device = client.get(f"/devices/{device_id}").json()
    assert device["final_grade"] == "A"

    checklist = client.get(f"/devices/{device_id}/checklist").json()["checklist"]
    assert "Verify IMEI is not blacklisted" in checklist


def test_patch_rejects_unknown_grade(client):
    _load(client)
    device_id = client.get("/devices").json()[0]["device_id"]
    assert client.patch(f"/devices/{device_id}", json={"manual_grade": "Z"}).status_code == 422


def test_missing_rows_are_404(client):
    assert client.get("/devices/nope").status_code == 404
    assert client.patch("/devices/nope", json={"manual_grade": "A"}).status_code == 404
    assert client.get("/devices/nope/checklist").status_code == 404
    assert client.post("/verdicts/42/status", json={"success": True}).status_code == 404


def test_verdict_status_callback(client):
    _load(client)
    verdict = client.get("/verdicts").json()[0]
    res = client.post(f"/verdicts/{verdict['id']}/status",
                      json={"success": True, "status": "scheduled", "external_id": "cal-7"})
    assert res.status_code == 200
    assert res.json()["status"] == "SCHEDULED"

    bad = client.post(f"/verdicts/{verdict['id']}/status", json={"success": True, "status": "WON"})
    assert bad.status_code == 422


def test_purge_devices(client):
    _load(client)
    res = client.delete("/devices", params={"older_than_days": 30}).json()
    assert res == {"status": "deleted", "removed": 0}
    assert len(client.get("/devices").json()) == 2


def test_summary_over_worklist(client):
    assert client.get("/summary").json()["total"] == 0
    _load(client)
    summary = client.get("/summary").json()
    verdict = client.get("/verdicts").json()[0]
    assert summary["total"] == 1
    assert summary["top_device_id"] == verdict["device_id"]
    assert summary["by_deal_class"] == {verdict["deal_class"]: 1}
    assert verdict["strategy"]
    assert verdict["walk_away_price"] >= verdict["opening_offer"]
