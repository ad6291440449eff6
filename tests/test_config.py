"""Tests for ImportConfig."""

import json

import pytest

from task_import.errors import ConfigError
from task_import.models import ImportConfig


class TestImportConfig:
    """Test configuration defaults, validation and loading."""

    def test_defaults(self) -> None:
        config = ImportConfig()

        assert config.page_size == 50
        assert config.fetch_ahead == 3
        assert config.max_attempts == 5

    @pytest.mark.parametrize("field, value", [
        ("page_size", 0),
        ("fetch_ahead", 0),
        ("max_attempts", 0),
        ("backoff_cap", -1),
        ("request_timeout", 0),
    ])
    def test_rejects_out_of_range(self, field, value) -> None:
        with pytest.raises(ConfigError):
            ImportConfig(**{field: value})

    def test_from_json_file(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "page_size": 25,
            "provider_options": {"jira": {"base_url": "https://ex.atlassian.net"}},
        }))

        config = ImportConfig.from_json_file(str(path))

        assert config.page_size == 25
        assert config.fetch_ahead == 3
        assert config.options_for("jira") == {"base_url": "https://ex.atlassian.net"}
        assert config.options_for("trello") == {}

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ConfigError):
            ImportConfig.from_json_file(str(tmp_path / "missing.json"))

    def test_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("TASK_IMPORT_PAGE_SIZE", "10")
        monkeypatch.setenv("TASK_IMPORT_TIMEOUT", "2.5")

        config = ImportConfig.from_env(ImportConfig(fetch_ahead=4))

        assert config.page_size == 10
        assert config.request_timeout == 2.5
        assert config.fetch_ahead == 4

    def test_from_env_rejects_garbage(self, monkeypatch) -> None:
        monkeypatch.setenv("TASK_IMPORT_MAX_ATTEMPTS", "many")

        with pytest.raises(ConfigError):
            ImportConfig.from_env()

    def test_with_options_copies(self) -> None:
        base = ImportConfig(provider_options={"jira": {"jql": "project = A"}})

        merged = base.with_options("jira", base_url="https://ex.atlassian.net")

        assert merged.options_for("jira") == {"jql": "project = A", "base_url": "https://ex.atlassian.net"}
        assert base.options_for("jira") == {"jql": "project = A"}
