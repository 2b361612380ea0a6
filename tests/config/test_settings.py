"""
Settings loader tests.

Verifies:
- The packaged defaults load and validate
- Environment overrides for the settings file and database URL
- Parse errors for missing keys and invalid values
- Checksums identify settings content
"""


import pytest
import yaml

from privileges_config import (
    DATABASE_URL_ENV,
    DEFAULT_SETTINGS_PATH,
    SETTINGS_PATH_ENV,
    compute_checksum,
    get_active_settings,
    load_settings,
    parse_settings,
)
from privileges_kernel.domain.approval import EscalationThresholds


def _minimal(**overrides):
    data = {
        "settings_id": "test",
        "version": 1,
        "database": {"url": "sqlite://"},
    }
    data.update(overrides)
    return data


class TestDefaults:

    def test_packaged_defaults_load(self):
        settings = load_settings(DEFAULT_SETTINGS_PATH)

        assert settings.settings_id == "privileges-default"
        assert settings.database.url.startswith("postgresql://")
        assert settings.approval.require_rejection_comments is False
        assert settings.escalation.thresholds() == EscalationThresholds(24, 48, 72)
        assert settings.logging.level == "INFO"
        assert len(settings.checksum) == 64

    def test_optional_sections_default(self):
        settings = parse_settings(_minimal())
        assert settings.approval.require_rejection_comments is False
        assert settings.escalation.thresholds() == EscalationThresholds()
        assert settings.database.pool_size == 20


class TestActiveSettings:

    def test_database_url_override(self, monkeypatch):
        monkeypatch.delenv(SETTINGS_PATH_ENV, raising=False)
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///override.db")

        settings = get_active_settings()

        assert settings.database.url == "sqlite:///override.db"
        assert settings.settings_id == "privileges-default"

    def test_settings_file_from_environment(self, monkeypatch, tmp_path):
        path = tmp_path / "site.yaml"
        path.write_text(yaml.safe_dump(_minimal(settings_id="site", version=7)))
        monkeypatch.setenv(SETTINGS_PATH_ENV, str(path))
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)

        settings = get_active_settings()

        assert (settings.settings_id, settings.version) == ("site", 7)

    def test_explicit_path_wins(self, monkeypatch, tmp_path):
        path = tmp_path / "explicit.yaml"
        path.write_text(yaml.safe_dump(_minimal(settings_id="explicit")))
        monkeypatch.setenv(SETTINGS_PATH_ENV, str(tmp_path / "missing.yaml"))
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)

        assert get_active_settings(path).settings_id == "explicit"

    def test_config_trace_logged(self, monkeypatch, captured_logs):
        monkeypatch.delenv(SETTINGS_PATH_ENV, raising=False)
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)

        settings = get_active_settings()

        traces = [
            r for r in captured_logs()
            if r["message"] == "PRIVILEGES_CONFIG_TRACE" and r["logger"] == "privileges_kernel.config"
        ]
        assert len(traces) == 1
        assert traces[0]["checksum"] == settings.checksum
        assert traces[0]["database_url_overridden"] is False

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_settings(tmp_path / "nope.yaml")


class TestParseErrors:

    @pytest.mark.parametrize("key", ["settings_id", "version", "database"])
    def test_missing_required_key(self, key):
        data = _minimal()
        del data[key]
        with pytest.raises(KeyError):
            parse_settings(data)

    def test_missing_database_url(self):
        with pytest.raises(KeyError):
            parse_settings(_minimal(database={"echo": True}))

    def test_non_boolean_flag(self):
        with pytest.raises(ValueError, match="require_rejection_comments"):
            parse_settings(_minimal(approval={"require_rejection_comments": "yes"}))

    def test_inconsistent_escalation(self):
        with pytest.raises(ValueError):
            parse_settings(_minimal(escalation={"reminder_hours": 50, "manager_hours": 48}))

    def test_unknown_log_level(self):
        with pytest.raises(ValueError, match="logging.level"):
            parse_settings(_minimal(logging={"level": "LOUD"}))

    def test_log_level_case_insensitive(self):
        assert parse_settings(_minimal(logging={"level": "debug"})).logging.level == "DEBUG"


class TestChecksum:

    def test_deterministic_and_order_independent(self):
        a = {"x": 1, "y": {"b": 2, "a": 1}}
        b = {"y": {"a": 1, "b": 2}, "x": 1}
        assert compute_checksum(a) == compute_checksum(b)

    def test_content_change_changes_checksum(self):
        base = _minimal()
        changed = _minimal(approval={"require_rejection_comments": True})
        assert parse_settings(base).checksum != parse_settings(changed).checksum
