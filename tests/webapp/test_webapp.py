"""Tests for the HTTP routes."""

import os
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from conftest import FakeDrive, FakeSink, PARENT_ID
from storage import DOCUMENT, LocalObjectStore
from webapp import create_app
from workflows import Runtime

CRON = {"X-Appengine-Cron": "true"}


@pytest.fixture
def backends(temp_dir):
    return dict(drive=FakeDrive(), sink=FakeSink(), object_store=LocalObjectStore(temp_dir))


def make_client(config, backends):
    return TestClient(create_app(config, runtime_factory=lambda cfg: Runtime(cfg, **backends)))


@pytest.fixture
def client(config, backends):
    return make_client(config, backends)


class TestIngest:

    def test_delivers_payload(self, client, backends, payload):
        response = client.post("/", json=payload.body)
        assert response.status_code == 200
        assert response.json() == {"status": "delivered"}
        assert len(backends["drive"].create_calls) == 1
        assert len(backends["sink"].rows) == 1

    def test_failed_delivery_is_queued(self, client, backends, config, payload):
        backends["sink"].fail = True
        response = client.post("/", json=payload.body)
        assert response.json() == {"status": "queued"}
        assert list(backends["object_store"].iter_keys(config.retry_bucket_inserts)) == [
            "1707552000"
        ]

    @pytest.mark.parametrize("kwargs", [
        dict(content=b""),
        dict(content=b"{broken"),
        dict(json={"start": "no key"}),
        dict(json=[1, 2, 3]),
        dict(content=b'{"start": "x", "start_unix": Infinity}'),
    ])
    def test_unusable_bodies_are_ignored(self, client, backends, kwargs):
        response = client.post("/", **kwargs)
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        assert backends["drive"].create_calls == []

    def test_query_string_is_rejected(self, client, backends, payload):
        response = client.post("/?debug=1", json=payload.body)
        assert response.json() == {"status": "ignored"}
        assert backends["drive"].create_calls == []

    def test_misconfigured(self, config, backends, payload):
        client = make_client(replace(config, parent_id=""), backends)
        response = client.post("/", json=payload.body)
        assert response.status_code == 200
        assert response.json() == {"status": "misconfigured"}

    def test_unknown_path_is_ignored(self, client, backends, payload):
        response = client.post("/upload", json=payload.body)
        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        assert backends["drive"].create_calls == []

    def test_unopenable_state_delivers_to_parent(self, config, backends, payload, temp_dir):
        blocker = os.path.join(temp_dir, "not_a_dir")
        with open(blocker, "w") as f:
            f.write("x")
        client = make_client(replace(config, state_db=os.path.join(blocker, "folders.db")),
                             backends)

        response = client.post("/", json=payload.body)

        assert response.json() == {"status": "delivered"}
        assert backends["drive"].create_calls == [
            (PARENT_ID, "cnc_result_1707552000", DOCUMENT)
        ]
        assert len(backends["sink"].rows) == 1


class TestScheduledTasks:

    def test_reconcile_requires_scheduler_header(self, client, backends):
        response = client.get("/tasks/subfolder/")
        assert response.json() == {"status": "skipped"}
        assert backends["drive"].list_calls == 0

    def test_reconcile(self, client, backends):
        response = client.get("/tasks/subfolder/", headers=CRON)
        body = response.json()
        assert body["status"] == "done"
        assert body["subfolder_created"] == 1
        assert len(backends["drive"].create_calls) == 1

    def test_reconcile_failure(self, config, backends):
        client = make_client(replace(config, parent_id=""), backends)
        response = client.get("/tasks/subfolder/", headers=CRON)
        assert response.status_code == 200
        assert response.json() == {"status": "failed"}

    def test_reconcile_with_unopenable_state_fails(self, config, backends, temp_dir):
        blocker = os.path.join(temp_dir, "not_a_dir")
        with open(blocker, "w") as f:
            f.write("x")
        client = make_client(replace(config, state_db=os.path.join(blocker, "folders.db")),
                             backends)
        response = client.get("/tasks/subfolder/", headers=CRON)
        assert response.status_code == 200
        assert response.json() == {"status": "failed"}
        assert backends["drive"].list_calls == 0

    def test_retry_requires_scheduler_header(self, client):
        assert client.get("/tasks/retry/").json() == {"status": "skipped"}

    def test_retry(self, client, backends, config, payload):
        backends["object_store"].put(config.retry_bucket_uploads, payload.key,
                                     payload.to_bytes())
        body = client.get("/tasks/retry/", headers=CRON).json()
        assert body["status"] == "done"
        assert body["uploads"]["retry_success"] == 1
        assert body["inserts"]["retry_success"] == 0
        assert len(backends["drive"].create_calls) == 1
