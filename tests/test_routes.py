"""Tests for the run routes."""

import asyncio
import time

import pytest
from fastapi.testclient import TestClient

from outlight.database import get_db
from outlight.main import app
from outlight.models.product import Product
from outlight.routes import runs as runs_routes
from outlight.services.registry import RunRegistry


@pytest.fixture
def client(test_db, job_client):
    """Test client with the fake providers and an in-memory product store."""

    def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        app.state.registry = RunRegistry(job_client=job_client, max_runs=3)
        yield test_client
    app.dependency_overrides.clear()


def wait_until_finished(client, run_id, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/runs/{run_id}").json()
        if body["status"] != "running":
            return body
        time.sleep(0.01)
    raise AssertionError("run did not finish")


def test_submit_and_query_run(client):
    """Test submit, then query until the run is done."""
    response = client.post(
        "/runs",
        json={
            "provider": "fake-image",
            "prompts": ["on marble", "", "in a forest"],
            "custom_url": "https://ref.test/p.png",
            "concurrency": 2,
        },
    )
    assert response.status_code == 200
    summary = response.json()
    assert summary["name"] == "Run #1"
    assert summary["progress"] == {"completed": 0, "total": 2}

    body = wait_until_finished(client, summary["run_id"])

    assert body["status"] == "done"
    assert body["progress"] == {"completed": 2, "total": 2}
    assert body["reference_url"] == "https://ref.test/p.png"
    assert {o["outcome"]["artifact_url"] for o in body["outcomes"]} == {
        "https://cdn.test/on marble.png",
        "https://cdn.test/in a forest.png",
    }


def test_submit_with_product_reference(client, test_db):
    """Test that the product image is used as reference."""
    product = Product(name="Mug", slug="mug", image_url="https://cdn.test/mug.png")
    test_db.add(product)
    test_db.commit()

    response = client.post(
        "/runs",
        json={"provider": "fake-image", "prompts": ["steam"], "product_id": product.id},
    )

    assert response.status_code == 200
    body = wait_until_finished(client, response.json()["run_id"])
    assert body["reference_url"] == "https://cdn.test/mug.png"


def test_unresolvable_reference_creates_no_run(client):
    """Test that a failed lookup is rejected synchronously."""
    response = client.post(
        "/runs",
        json={"provider": "fake-image", "prompts": ["a"], "product_id": "missing"},
    )

    assert response.status_code == 404
    assert client.get("/runs").json() == {"runs": [], "active_run_id": None}


def test_empty_batch_rejected(client):
    """Test that a batch of blank lines is a bad request."""
    response = client.post(
        "/runs",
        json={"provider": "fake-image", "prompts": ["  "], "custom_url": "https://ref.test/p.png"},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "At least one prompt is required"


def test_cancel_activate_and_delete(client, image_provider):
    """Test the control endpoints on a running run."""
    image_provider.delay = 0.5
    payload = {"provider": "fake-image", "prompts": ["a", "b"], "custom_url": "https://ref.test/p.png"}
    first = client.post("/runs", json=payload).json()
    second = client.post("/runs", json=payload).json()

    listing = client.post(f"/runs/{first['run_id']}/activate").json()
    assert listing["active_run_id"] == first["run_id"]
    assert [r["run_id"] for r in listing["runs"]] == [first["run_id"], second["run_id"]]

    cancelled = client.post(f"/runs/{first['run_id']}/cancel").json()
    assert cancelled["status"] == "cancelled"

    deleted = client.delete(f"/runs/{first['run_id']}").json()
    assert deleted["active_run_id"] == second["run_id"]
    assert client.get(f"/runs/{first['run_id']}").status_code == 404
    assert client.post(f"/runs/{first['run_id']}/cancel").status_code == 404


def test_health(client):
    """Test health check."""
    assert client.get("/health").json() == {"status": "healthy"}


def test_product_lookup_runs_off_the_event_loop(client, monkeypatch):
    """Test that the blocking product query doesn't run on the loop driving the runs."""
    seen = []

    def fake_resolve(db, product_id, custom_url):
        try:
            asyncio.get_running_loop()
            seen.append("loop")
        except RuntimeError:
            seen.append("thread")
        return "https://ref.test/p.png"

    monkeypatch.setattr(runs_routes, "resolve_reference_url", fake_resolve)

    response = client.post("/runs", json={"provider": "fake-image", "prompts": ["a"], "product_id": "p-1"})

    assert response.status_code == 200
    assert seen == ["thread"]
    assert wait_until_finished(client, response.json()["run_id"])["reference_url"] == "https://ref.test/p.png"


def test_root_info(client):
    """Test root endpoint."""
    body = client.get("/").json()

    assert body["name"] == "Outlight"
    assert "seedream-v4-edit" in body["providers"]
