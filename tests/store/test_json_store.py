"""Tests for the JSON store server."""

import json

import pytest

from faremarket.config import COLLECTIONS
from faremarket.server.json_store import create_app, empty_db


@pytest.fixture
def client(tmp_path):
    app = create_app(str(tmp_path / "db.json"))
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def sample_ride():
    return {"id": "ride-1", "status": "accepted", "rider_id": "rider-1", "final_fare": 24.5}


class TestJsonStore:
    """Test class for the store's HTTP API."""

    def test_new_database_has_every_collection(self, tmp_path):
        db_file = tmp_path / "nested" / "db.json"
        create_app(str(db_file))

        with open(db_file) as f:
            assert json.load(f) == empty_db()
        assert set(empty_db()) == set(COLLECTIONS)

    def test_create_and_get(self, client, sample_ride):
        response = client.post("/rides", json=sample_ride)
        assert response.status_code == 201

        response = client.get("/rides/ride-1")
        assert response.status_code == 200
        assert response.get_json()["final_fare"] == 24.5

    def test_create_requires_id(self, client):
        response = client.post("/rides", json={"status": "accepted"})
        assert response.status_code == 400

    def test_create_duplicate_id_conflicts(self, client, sample_ride):
        client.post("/rides", json=sample_ride)
        response = client.post("/rides", json=sample_ride)
        assert response.status_code == 409
        assert response.get_json()["current"]["id"] == "ride-1"

    def test_unknown_collection(self, client):
        assert client.get("/vehicles").status_code == 404
        assert client.get("/vehicles/query").status_code == 404

    def test_get_missing_item(self, client):
        assert client.get("/rides/nope").status_code == 404

    def test_query_repeated_key_matches_any_value(self, client):
        client.post("/rides", json={"id": "a", "status": "accepted", "driver_id": "d1"})
        client.post("/rides", json={"id": "b", "status": "en_route", "driver_id": "d1"})
        client.post("/rides", json={"id": "c", "status": "completed", "driver_id": "d1"})
        client.post("/rides", json={"id": "d", "status": "accepted", "driver_id": "d2"})

        response = client.get("/rides/query?driver_id=d1&status=accepted&status=en_route")

        assert sorted(r["id"] for r in response.get_json()) == ["a", "b"]

    def test_patch_merges_fields(self, client, sample_ride):
        client.post("/rides", json=sample_ride)

        response = client.patch("/rides/ride-1", json={"status": "en_route", "id": "ignored"})

        body = response.get_json()
        assert response.status_code == 200
        assert body["id"] == "ride-1"
        assert body["status"] == "en_route"
        assert body["rider_id"] == "rider-1"

    def test_conditional_patch_applies_when_status_matches(self, client, sample_ride):
        client.post("/rides", json=sample_ride)

        response = client.patch("/rides/ride-1?if_status=pending&if_status=accepted",
                                json={"status": "en_route"})

        assert response.status_code == 200
        assert response.get_json()["status"] == "en_route"

    def test_conditional_patch_rejects_stale_status(self, client, sample_ride):
        client.post("/rides", json=sample_ride)
        client.patch("/rides/ride-1", json={"status": "cancelled"})

        response = client.patch("/rides/ride-1?if_status=accepted", json={"status": "en_route"})

        body = response.get_json()
        assert response.status_code == 409
        assert body["current"]["status"] == "cancelled"
        assert client.get("/rides/ride-1").get_json()["status"] == "cancelled"

    def test_conditional_patch_on_other_fields(self, client, sample_ride):
        client.post("/rides", json=dict(sample_ride, status="completed", payment_status="paid"))

        response = client.patch("/rides/ride-1?if_payment_status=pending&if_payment_status=failed",
                                json={"payment_status": "failed"})

        assert response.status_code == 409
        assert response.get_json()["current"]["payment_status"] == "paid"

        response = client.patch("/rides/ride-1?if_status=completed&if_payment_status=paid",
                                json={"driver_notes": "Tip received"})
        assert response.status_code == 200

    def test_put_replaces_and_delete_removes(self, client, sample_ride):
        client.post("/rides", json=sample_ride)

        response = client.put("/rides/ride-1", json={"status": "pending"})
        assert response.get_json() == {"status": "pending", "id": "ride-1"}

        assert client.delete("/rides/ride-1").status_code == 200
        assert client.get("/rides/ride-1").status_code == 404
