"""
Start-up wiring tests.

Verifies:
- Database settings reach the engine factory
- The configured log level reaches configure_logging
- Active settings are loaded when none are passed
- Schema creation only on request
"""

import importlib
import logging

import pytest

from privileges_config import DATABASE_URL_ENV, SETTINGS_PATH_ENV
from privileges_config.loader import parse_settings
from privileges_services.bootstrap import bootstrap

# The package re-exports the bootstrap() function under the submodule's name,
# so fetch the module itself for monkeypatching.
bootstrap_module = importlib.import_module("privileges_services.bootstrap")


@pytest.fixture
def calls(monkeypatch):
    """Record what bootstrap hands to the kernel instead of replacing the test engine."""
    recorded = {"engine": [], "logging": [], "create_tables": 0}
    sentinel_engine = object()

    def fake_init_engine(url, **options):
        recorded["engine"].append((url, options))
        return sentinel_engine

    def fake_configure_logging(**options):
        recorded["logging"].append(options)

    def fake_create_tables():
        recorded["create_tables"] += 1

    monkeypatch.setattr(bootstrap_module, "init_engine_from_url", fake_init_engine)
    monkeypatch.setattr(bootstrap_module, "configure_logging", fake_configure_logging)
    monkeypatch.setattr(bootstrap_module, "create_tables", fake_create_tables)
    recorded["sentinel"] = sentinel_engine
    return recorded


@pytest.fixture
def site_settings():
    return parse_settings({
        "settings_id": "site",
        "version": 3,
        "database": {
            "url": "postgresql://app@db/privileges",
            "echo": True,
            "pool_size": 5,
            "max_overflow": 2,
        },
        "logging": {"level": "debug"},
    })


class TestBootstrap:

    def test_database_settings_reach_engine(self, calls, site_settings):
        engine = bootstrap(site_settings)

        assert engine is calls["sentinel"]
        assert calls["engine"] == [(
            "postgresql://app@db/privileges",
            {"echo": True, "pool_size": 5, "max_overflow": 2},
        )]

    def test_log_level_applied(self, calls, site_settings):
        bootstrap(site_settings)
        assert calls["logging"] == [{"level": logging.DEBUG}]

    def test_schema_created_only_on_request(self, calls, site_settings):
        bootstrap(site_settings)
        assert calls["create_tables"] == 0

        bootstrap(site_settings, create_schema=True)
        assert calls["create_tables"] == 1

    def test_active_settings_used_by_default(self, calls, monkeypatch):
        monkeypatch.delenv(SETTINGS_PATH_ENV, raising=False)
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///bootstrap.db")

        bootstrap()

        url, options = calls["engine"][0]
        assert url == "sqlite:///bootstrap.db"
        assert options == {"echo": False, "pool_size": 20, "max_overflow": 10}
        assert calls["logging"] == [{"level": logging.INFO}]
