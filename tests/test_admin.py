import os
import threading
import zipfile
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from main import create_app

TIMEOUT = 10


@pytest.fixture
def client(registry):
    return TestClient(create_app(registry))


def _run_batch(client, registry, folder, **settings):
    body = {"selectedPath": str(folder), "settings": {"numberOfCopies": 2, "baseText": "Order 1", **settings}}
    job_id = client.post("/api/batch-copy", json=body).json()["jobId"]
    job = registry.wait(job_id, TIMEOUT)
    assert job.status.value == "completed"
    return job_id, job.result


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def test_job_details(client, registry):
    job_id = registry.start("encrypt", "/x", lambda p: {"path": "/x", "filesWatermarked": 3})
    registry.wait(job_id, TIMEOUT)

    data = client.get(f"/api/admin/jobs/{job_id}").json()
    assert data["id"] == job_id
    assert data["operation"] == "encrypt"
    assert data["status"] == "completed"
    assert data["result"] == {"path": "/x", "filesWatermarked": 3}
    assert "startTime" in data

    assert client.get("/api/admin/jobs/missing").status_code == 404


def test_approve_issues_a_working_download_token(client, registry, photo_folder):
    job_id, result = _run_batch(client, registry, photo_folder)

    r = client.post(f"/api/admin/jobs/{job_id}/approve")
    assert r.status_code == 200
    token = r.json()["token"]
    assert token != result["downloadToken"]

    r = client.get(f"/api/download/{token}")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/zip"


def test_approve_requires_a_result_path(client, registry):
    release = threading.Event()
    running = registry.start("batch", "/busy", lambda p: release.wait(TIMEOUT) and None)
    r = client.post(f"/api/admin/jobs/{running}/approve")
    assert r.status_code == 400
    assert r.json()["success"] is False
    release.set()
    registry.wait(running, TIMEOUT)

    assert client.post("/api/admin/jobs/missing/approve").status_code == 404


def test_images_from_archives(client, registry, photo_folder):
    job_id, result = _run_batch(client, registry, photo_folder, createZip=True)

    archives = client.get(f"/api/admin/jobs/{job_id}/images").json()["archives"]
    assert [a["name"] for a in archives] == ["001/Source.zip", "002/Source.zip"]
    assert {a["type"] for a in archives} == {"zip"}
    first = archives[0]
    assert first["path"] == os.path.join("001", "Source.zip")
    assert {i["name"] for i in first["images"]} == {"1.jpg", "2.jpg", "3.jpg", "4.jpg", "5.jpg", "11.jpg"}

    image = next(i for i in first["images"] if i["name"] == "2.jpg")
    r = client.get(image["previewURL"])
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/jpeg"
    with zipfile.ZipFile(os.path.join(result["path"], first["path"])) as zf:
        assert r.content == zf.read(_query(image["previewURL"])["entry"])


def test_images_from_folders(client, registry, photo_folder):
    job_id, result = _run_batch(client, registry, photo_folder)

    archives = client.get(f"/api/admin/jobs/{job_id}/images").json()["archives"]
    assert [(a["name"], a["type"]) for a in archives] == [("001", "folder"), ("002", "folder")]
    assert len(archives[1]["images"]) == 6

    image = archives[0]["images"][0]
    rel = _query(image["previewURL"])["path"]
    assert rel.startswith(os.path.join("001", "Source") + os.sep)
    r = client.get(image["previewURL"])
    assert r.status_code == 200
    with open(os.path.join(result["path"], rel), "rb") as f:
        assert r.content == f.read()


def test_preview_serves_the_watermark_sample(client, registry, photo_folder):
    job_id, result = _run_batch(client, registry, photo_folder, createZip=True, addVisibleWatermark=True, photoNumber=2)

    sample = result["watermarkSample"]
    assert sample == {"zip": os.path.join("001", "Source.zip"), "entry": "2.jpg"}
    r = client.get(f"/api/admin/jobs/{job_id}/preview", params=sample)
    assert r.status_code == 200
    assert r.content[:2] == b"\xff\xd8"


@pytest.mark.parametrize(
    "params",
    [
        {"path": "../Source/1.jpg"},
        {"path": "/etc/passwd"},
        {"path": "001/../../Source/notes.txt"},
        {"zip": "../outside.zip", "entry": "1.jpg"},
    ],
)
def test_preview_rejects_paths_outside_the_result(client, registry, photo_folder, params):
    job_id, _ = _run_batch(client, registry, photo_folder)
    r = client.get(f"/api/admin/jobs/{job_id}/preview", params=params)
    assert r.status_code == 403
    assert r.json()["error"] == "Forbidden"


def test_preview_bad_requests(client, registry, photo_folder):
    job_id, _ = _run_batch(client, registry, photo_folder, createZip=True)
    url = f"/api/admin/jobs/{job_id}/preview"

    assert client.get(url).status_code == 400
    assert client.get(url, params={"zip": os.path.join("001", "Source.zip")}).status_code == 400
    assert client.get(url, params={"zip": os.path.join("001", "Source.zip"), "entry": "99.jpg"}).status_code == 404
    assert client.get(url, params={"path": "001/none.jpg"}).status_code == 404
    assert client.get("/api/admin/jobs/missing/preview", params={"path": "x"}).status_code == 404

    no_result = registry.start("encrypt", "/n", lambda p: None)
    registry.wait(no_result, TIMEOUT)
    assert client.get(f"/api/admin/jobs/{no_result}/preview", params={"path": "x"}).status_code == 400


def test_stats(client, registry, photo_folder):
    job_id, result = _run_batch(client, registry, photo_folder)

    stats = client.get(f"/api/admin/jobs/{job_id}/stats").json()["stats"]
    total = sum(os.path.getsize(os.path.join(root, f)) for root, _, files in os.walk(result["path"]) for f in files)
    assert stats["images"] == 12
    assert stats["videos"] == 2
    assert stats["texts"] == 2
    assert stats["zips"] == 0
    assert stats["totalBytes"] == total
    assert stats["totalSize"].endswith(("bytes", "KB", "MB"))

    empty = registry.start("encrypt", "/n", lambda p: None)
    registry.wait(empty, TIMEOUT)
    assert client.get(f"/api/admin/jobs/{empty}/stats").json() == {"stats": {}}
