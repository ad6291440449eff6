"""Tests for the HTTP API."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from task_import.api.main import app
from task_import.api.storage import import_storage, task_store
from task_import.errors import CredentialRejectedError, ProviderUnreachableError
from task_import.models import ImportJob
from task_import.services.auth_validator import ValidatedCredential
from task_import.services.executor import ImportExecutor
from task_import.services.source_registry import SourceRegistry


@pytest.fixture
def client():
    import_storage.clear()
    task_store.clear()
    with TestClient(app) as test_client:
        yield test_client
    import_storage.clear()
    task_store.clear()


@pytest.fixture
def csv_path(tmp_path) -> str:
    path = tmp_path / "tasks.csv"
    path.write_text(
        "id,title,status,priority\n"
        "1,Write docs,Done,High\n"
        "2,Review PR,In Review,\n"
        "3,,Open,Low\n"
    )
    return str(path)


class TestProviders:
    """Test provider catalog endpoints."""

    def test_health(self, client) -> None:
        assert client.get("/api/health").json() == {"status": "healthy"}

    def test_list_providers(self, client) -> None:
        response = client.get("/api/providers")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 6
        assert [p["id"] for p in data["providers"]][:2] == ["jira", "trello"]

    def test_get_provider(self, client) -> None:
        response = client.get("/api/providers/Linear")

        assert response.status_code == 200
        assert response.json()["display_name"] == "Linear"

    def test_unknown_provider(self, client) -> None:
        assert client.get("/api/providers/basecamp").status_code == 404

    def test_default_mapping(self, client) -> None:
        response = client.get("/api/providers/jira/mapping")

        rules = {r["source_field"]: r for r in response.json()["rules"]}
        assert rules["summary"]["target_field"] == "title"
        assert rules["status.name"]["transform"]["type"] == "enum_map"

    def test_validate_local_provider(self, client) -> None:
        response = client.post("/api/providers/csv/validate", json={})

        assert response.status_code == 200
        assert response.json()["valid"] is True

    def test_validate_empty_credential(self, client) -> None:
        response = client.post("/api/providers/asana/validate", json={"credential": " "})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "empty"

    @pytest.mark.parametrize("error, status", [
        (CredentialRejectedError(status_code=401), 401),
        (ProviderUnreachableError(status_code=503), 503),
    ])
    def test_validate_failures(self, client, error, status) -> None:
        with patch("task_import.api.routes.providers.AuthValidator") as validator_cls:
            validator_cls.return_value.validate = AsyncMock(side_effect=error)
            response = client.post("/api/providers/asana/validate", json={"credential": "token-123456789"})

        assert response.status_code == status

    def test_validate_masks_credential(self, client) -> None:
        secret = "super-secret-asana-token"
        with patch("task_import.api.routes.providers.AuthValidator") as validator_cls:
            validator_cls.return_value.validate = AsyncMock(
                return_value=ValidatedCredential(SourceRegistry().describe("asana"), secret)
            )
            response = client.post("/api/providers/asana/validate", json={"credential": secret})

        assert response.status_code == 200
        assert secret not in response.text


class TestImports:
    """Test import job endpoints."""

    def test_csv_import_runs(self, client, csv_path) -> None:
        """A CSV import runs in the background and commits valid rows."""
        response = client.post("/api/imports", json={"provider": "csv", "options": {"path": csv_path}})

        assert response.status_code == 202
        job_id = response.json()["id"]

        job = client.get(f"/api/imports/{job_id}").json()
        assert job["status"] == "partial"
        assert job["processed"] == 3
        assert job["committed"] == 2
        assert job["errors"][0]["item_id"] == "3"
        assert job["errors"][0]["code"] == "missing_required_field"

        tasks = client.get("/api/tasks", params={"source_id": "csv"}).json()
        assert tasks["total"] == 2
        task = client.get("/api/tasks/csv/1").json()
        assert task["status"] == "done"
        assert task["priority"] == "high"

    def test_custom_mapping(self, client, csv_path) -> None:
        response = client.post("/api/imports", json={
            "provider": "csv",
            "options": {"path": csv_path},
            "mapping": [
                {"source_field": "id", "target_field": "title"},
                {"source_field": "status", "target_field": "status",
                 "transform": {"type": "enum_map", "config": {"mapping": {"done": "done"}, "default": "todo"}}},
            ],
        })

        assert response.status_code == 202
        job = client.get(f"/api/imports/{response.json()['id']}").json()
        assert job["status"] == "completed"
        assert client.get("/api/tasks/csv/3").json()["title"] == "3"

    def test_invalid_mapping(self, client, csv_path) -> None:
        response = client.post("/api/imports", json={
            "provider": "csv",
            "options": {"path": csv_path},
            "mapping": [{"source_field": "title", "target_field": "title"}],
        })

        assert response.status_code == 422
        assert response.json()["detail"][0]["target_field"] == "status"
        assert import_storage.list_all() == []

    def test_unknown_transform(self, client) -> None:
        response = client.post("/api/imports", json={
            "provider": "csv",
            "mapping": [{"source_field": "t", "target_field": "title", "transform": {"type": "reverse"}}],
        })

        assert response.status_code == 422

    def test_unknown_provider(self, client) -> None:
        assert client.post("/api/imports", json={"provider": "basecamp"}).status_code == 404

    def test_rejected_credential_starts_nothing(self, client) -> None:
        with patch("task_import.api.routes.imports.AuthValidator") as validator_cls:
            validator_cls.return_value.validate = AsyncMock(side_effect=CredentialRejectedError())
            response = client.post("/api/imports", json={"provider": "asana", "credential": "bad-token-xyz"})

        assert response.status_code == 401
        assert import_storage.list_all() == []

    def test_get_unknown_import(self, client) -> None:
        assert client.get("/api/imports/nope").status_code == 404

    def test_cancel(self, client) -> None:
        executor = ImportExecutor()
        job = ImportJob(source_id="jira")
        import_storage.create(job, executor)

        response = client.post(f"/api/imports/{job.id}/cancel")

        assert response.status_code == 200
        assert executor.cancel_requested

    def test_cancel_finished_import(self, client, csv_path) -> None:
        job_id = client.post("/api/imports", json={"provider": "csv", "options": {"path": csv_path}}).json()["id"]

        assert client.post(f"/api/imports/{job_id}/cancel").status_code == 400


class TestTasks:
    def test_unknown_task(self, client) -> None:
        assert client.get("/api/tasks/jira/NOPE-1").status_code == 404
