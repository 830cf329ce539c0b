import os
import sys

from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from servicebook.main import app


def test_golden_path_provider_double_booking_confirm_cancel(tmp_path, monkeypatch):
    monkeypatch.setenv("SERVICES_DB_PATH", str(tmp_path / "golden.sqlite3"))

    with TestClient(app) as client:
        provider = client.post(
            "/services/providers",
            json={"name": "Alice", "service_type": "cleaning", "contact_info": "a@x.com", "availability": [100]},
        )
        assert provider.status_code == 200
        assert provider.json()["id"] == 1
        assert provider.json()["average_rating"] == 0.0

        first = client.post(
            "/services/bookings",
            json={"service_provider_id": 1, "client_id": 5, "service_date": 100, "service_type": "cleaning"},
        )
        assert first.status_code == 200
        assert first.json()["id"] == 2
        assert first.json()["status"] == "Pending"

        second = client.post(
            "/services/bookings",
            json={"service_provider_id": 1, "client_id": 6, "service_date": 100, "service_type": "cleaning"},
        )
        assert second.status_code == 200
        assert second.json()["id"] == 3
        assert second.json()["status"] == "Pending"

        search = client.get("/services/providers/search", params={"query": "clean"})
        assert search.status_code == 200
        assert [item["id"] for item in search.json()] == [1]

        assert client.post("/services/bookings/2/confirm").status_code == 200
        assert client.post("/services/bookings/3/cancel").status_code == 200

        history = client.get("/services/providers/1/history")
        assert history.status_code == 200
        assert [(item["id"], item["status"]) for item in history.json()] == [(2, "Confirmed"), (3, "Canceled")]

    # A restart over the same file keeps the records and the counter.
    with TestClient(app) as client:
        assert client.get("/services/bookings/3").json()["status"] == "Canceled"
        next_client = client.post("/services/clients", json={"name": "Bob", "contact_info": "b@x.com"})
        assert next_client.status_code == 200
        assert next_client.json()["id"] == 4
