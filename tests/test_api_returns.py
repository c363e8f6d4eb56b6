"""
Tests for the /api/v1/returns HTTP surface using FastAPI's TestClient.
"""
import pytest
from fastapi.testclient import TestClient

from returnsdesk.config import Settings
from returnsdesk.main import create_app
from returnsdesk.services.returns_manager import build_returns_manager

BASE = "/api/v1/returns"


@pytest.fixture
def config():
    return Settings(STORAGE_BACKEND="memory", SCHEDULER_ENABLED=False, FILTER_DEBOUNCE_MS=20)


@pytest.fixture
def client(config, store, transport, clock):
    manager = build_returns_manager(config, store=store, transport=transport, clock=clock)
    app = create_app(manager=manager, config=config)
    with TestClient(app) as test_client:
        yield test_client


class TestListing:
    def test_initial_view_is_idle(self, client, transport):
        response = client.get(f"{BASE}/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "idle"
        assert data["groups"] == []
        assert transport.call_count == 0

    def test_select_account_and_refresh(self, client):
        response = client.put(f"{BASE}/accounts", json={"account_ids": ["acc-1"]})
        assert response.status_code == 200
        assert response.json()["selection"]["account_id"] == "acc-1"

        response = client.post(f"{BASE}/refresh")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "success"
        assert [r["id"] for r in data["independents"]] == ["r-1"]

    def test_grouped_returns_include_aggregates(self, client, transport, make_record, make_page):
        transport.page = make_page(
            make_record("r-1", sku="ABC-P", quantity=1, amount=50.0),
            make_record("r-2", sku="ABC-M", quantity=2, amount=70.0),
        )
        client.put(f"{BASE}/accounts", json={"account_ids": ["acc-1"]})
        data = client.post(f"{BASE}/refresh").json()

        group = data["groups"][0]
        assert group["base_key"] == "ABC"
        assert group["total_count"] == 2
        assert group["total_quantity"] == 3
        assert group["average_value"] == 60.0


class TestFilters:
    def test_patch_merges_filters(self, client):
        client.patch(f"{BASE}/filters", json={"search": "camisa"})
        data = client.patch(f"{BASE}/filters", json={"status": ["closed"]}).json()
        assert data["filters"]["search"] == "camisa"
        assert data["filters"]["status"] == ["closed"]

    def test_put_replaces_filters(self, client):
        client.patch(f"{BASE}/filters", json={"search": "camisa", "status": ["closed"]})
        data = client.put(f"{BASE}/filters", json={"search": "tenis"}).json()
        assert data["filters"]["search"] == "tenis"
        assert data["filters"]["status"] == []

    def test_delete_clears_filters(self, client):
        client.patch(f"{BASE}/filters", json={"search": "camisa"})
        data = client.delete(f"{BASE}/filters").json()
        assert data["filters"]["search"] == ""

    def test_invalid_date_is_rejected(self, client):
        response = client.patch(f"{BASE}/filters", json={"date_from": "not-a-date"})
        assert response.status_code == 422


class TestPaging:
    def test_set_page(self, client):
        data = client.put(f"{BASE}/page", json={"page": 3}).json()
        assert data["current_page"] == 3

    def test_page_size_resets_page(self, client):
        client.put(f"{BASE}/page", json={"page": 3})
        data = client.put(f"{BASE}/page", json={"page_size": 100}).json()
        assert data["current_page"] == 1
        assert data["page_size"] == 100

    def test_page_below_one_is_rejected(self, client):
        assert client.put(f"{BASE}/page", json={"page": 0}).status_code == 422


class TestAnnotations:
    def test_set_review_status(self, client):
        response = client.put(f"{BASE}/annotations/r-1", json={"status": "in_review"})
        assert response.status_code == 200
        data = response.json()
        assert data["record_id"] == "r-1"
        assert data["status"] == "in_review"

    def test_review_status_appears_in_view(self, client):
        client.put(f"{BASE}/accounts", json={"account_ids": ["acc-1"]})
        client.post(f"{BASE}/refresh")
        client.put(f"{BASE}/annotations/r-1", json={"status": "resolved"})
        assert client.get(f"{BASE}/").json()["annotations"] == {"r-1": "resolved"}

    def test_unknown_status_is_rejected(self, client):
        response = client.put(f"{BASE}/annotations/r-1", json={"status": "escalated"})
        assert response.status_code == 422

    def test_clear_and_prune(self, client):
        client.put(f"{BASE}/annotations/r-1", json={"status": "pending"})
        assert client.post(f"{BASE}/annotations/prune").json() == {"removed": 0, "remaining": 1}
        assert client.delete(f"{BASE}/annotations").status_code == 204
        assert client.post(f"{BASE}/annotations/prune").json() == {"removed": 0, "remaining": 0}


class TestHealth:
    def test_health_reports_manager_state(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["manager"] == "idle"

    def test_health_degraded_after_failed_fetch(self, client, transport):
        transport.fail_next(100)
        client.put(f"{BASE}/accounts", json={"account_ids": ["acc-1"]})
        client.post(f"{BASE}/refresh")
        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert "last_error" in data["checks"]

    def test_app_builds_its_own_manager(self, config):
        with TestClient(create_app(config=config)) as test_client:
            assert test_client.get("/health").json()["status"] == "healthy"

    def test_app_runs_its_own_scheduler(self):
        config = Settings(STORAGE_BACKEND="memory", SCHEDULER_ENABLED=True)
        app = create_app(config=config)
        with TestClient(app):
            assert app.state.scheduler.running
            assert {job.id for job in app.state.scheduler.get_jobs()} == {
                "prune_annotations",
                "purge_result_cache",
            }
        assert not app.state.scheduler.running
