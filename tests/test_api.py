# tests/test_api.py
import time
from datetime import date

from fastapi.testclient import TestClient

from archm.destination import bucket_name


def _wait_until(fn, timeout_s: float = 5.0, poll_s: float = 0.05) -> bool:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if fn():
            return True
        time.sleep(poll_s)
    return False


def _run_payload(src, dst, **kw) -> dict:
    payload = {"source_directory": str(src), "destination_directory": str(dst)}
    payload.update(kw)
    return payload


def _pipeline(client: TestClient) -> dict:
    r = client.get("/pipeline")
    assert r.status_code == 200, r.text
    return r.json()


def test_healthz(client: TestClient):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_settings_defaults_and_update(client: TestClient):
    r = client.get("/settings")
    assert r.status_code == 200, r.text
    assert r.json()["destination_mode"] == "TRANSFER_DATE"
    assert r.json()["partition_item_limit"] == 0

    body = r.json()
    body.update(partition_item_limit=-3, destination_mode="CREATION_DATE", skip_shortcuts_enabled=True)
    r = client.put("/settings", json=body)
    assert r.status_code == 200, r.text

    stored = client.get("/settings").json()
    assert stored["partition_item_limit"] == 0
    assert stored["destination_mode"] == "CREATION_DATE"
    assert stored["skip_shortcuts_enabled"] is True


def test_settings_reject_unknown_fields(client: TestClient):
    r = client.put("/settings", json={"theme": "dark"})
    assert r.status_code == 422


def test_run_moves_items_and_remembers_request(client: TestClient, roots):
    src, dst = roots
    (src / "a.txt").write_text("A")
    (src / "b").mkdir()
    (src / "b" / "c.txt").write_text("C")

    r = client.post("/runs", json=_run_payload(src, dst, partition_item_limit=5))
    assert r.status_code == 201, r.text
    plan = r.json()
    assert plan["task_count"] == 2
    assert [i["partition"] for i in plan["items"]] == ["P1", "P1"]

    ok = _wait_until(lambda: _pipeline(client)["last_outcome"] == "SUCCEEDED")
    assert ok, "run did not succeed in time"
    status = _pipeline(client)
    assert status["state"] == "IDLE"
    assert status["submitted"] == status["finished"] == 2

    bucket = dst / bucket_name(date.today()) / "P1"
    assert (bucket / "a.txt").read_text() == "A"
    assert (bucket / "b" / "c.txt").read_text() == "C"

    prefs = client.get("/settings").json()
    assert prefs["last_source_directory"] == str(src)
    assert prefs["last_destination_directory"] == str(dst)
    assert prefs["partition_item_limit"] == 5
    assert prefs["seven_zip_path"] == "7z"


def test_invalid_roots_return_400(client: TestClient, roots, tmp_path):
    src, dst = roots

    r = client.post("/runs", json=_run_payload(tmp_path / "nope", dst))
    assert r.status_code == 400, r.text
    assert r.json()["code"] == "VALIDATION_ERROR"
    assert r.json()["error"] == "Invalid source directory."

    r = client.post("/runs", json=_run_payload(src, src / "inside"))
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid destination directory."

    (src / "inside").mkdir()
    r = client.post("/runs", json=_run_payload(src, src / "inside"))
    assert r.status_code == 400
    assert r.json()["error"] == "Destination cannot be inside source."

    assert _pipeline(client)["state"] == "IDLE"
    assert client.get("/settings").json()["last_source_directory"] == ""


def test_cancel_requires_reset_before_next_run(client: TestClient, roots):
    src, dst = roots
    (src / "a.txt").write_text("A")

    r = client.post("/pipeline/cancel")
    assert r.status_code == 200, r.text
    assert r.json()["state"] == "RESET_REQUIRED"
    assert r.json()["last_outcome"] == "CANCELLED"

    r = client.post("/runs", json=_run_payload(src, dst))
    assert r.status_code == 409, r.text
    assert r.json()["code"] == "RESET_REQUIRED"
    assert (src / "a.txt").exists()

    r = client.post("/pipeline/reset")
    assert r.status_code == 200
    assert r.json()["state"] == "IDLE"

    r = client.post("/runs", json=_run_payload(src, dst))
    assert r.status_code == 201, r.text
    assert _wait_until(lambda: not (src / "a.txt").exists())


def test_pause_and_resume_are_ignored_when_idle(client: TestClient):
    assert client.post("/pipeline/pause").json()["state"] == "IDLE"
    assert client.post("/pipeline/resume").json()["state"] == "IDLE"


def test_events_follow_the_run(client: TestClient, roots):
    src, dst = roots
    (src / "only.txt").write_text("x")

    r = client.post("/runs", json=_run_payload(src, dst))
    assert r.status_code == 201, r.text
    assert _wait_until(lambda: _pipeline(client)["last_outcome"] == "SUCCEEDED")

    j = client.get("/pipeline/events").json()
    names = [e["event"] for e in j["events"]]
    assert names == ["started", "task_started", "task_finished", "succeeded"]
    assert j["total"] == 4
    assert j["events"][1]["description"] == "Transfer only.txt"
    assert j["events"][2]["detail"] == "COMPLETED"

    client.post("/pipeline/cancel")
    client.post("/pipeline/reset")
    assert client.get("/pipeline/events").json()["total"] == 0


def test_default_seven_zip_comes_from_env(client_factory, roots, fake_seven_zip):
    src, dst = roots
    (src / "pack.7z").write_bytes(b"7z")

    with client_factory(overrides={"ARCHM_SEVEN_ZIP": str(fake_seven_zip)}) as client:
        r = client.post("/runs", json=_run_payload(src, dst, decompression_enabled=True))
        assert r.status_code == 201, r.text
        assert r.json()["task_count"] == 2

        ok = _wait_until(lambda: _pipeline(client)["last_outcome"] == "SUCCEEDED", timeout_s=15.0)
        assert ok, _pipeline(client)

    out = dst / bucket_name(date.today()) / "pack"
    assert (out / "pack.7z").exists()
    assert (out / "extracted.txt").exists()


def test_explicit_seven_zip_is_remembered(client: TestClient, roots):
    src, dst = roots

    r = client.post("/runs", json=_run_payload(src, dst, seven_zip_path="/opt/7zip/7zz"))
    assert r.status_code == 201, r.text
    assert client.get("/settings").json()["seven_zip_path"] == "/opt/7zip/7zz"

    assert _wait_until(lambda: _pipeline(client)["state"] == "IDLE")
    r = client.post("/runs", json=_run_payload(src, dst, seven_zip_path="   "))
    assert r.status_code == 201, r.text
    assert client.get("/settings").json()["seven_zip_path"] == "7z"
