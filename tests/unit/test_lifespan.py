"""Unit tests for keytally/main.py — application factory and lifespan."""

from __future__ import annotations

import re
from typing import Any
from unittest.mock import MagicMock

import aiosqlite
import pytest
from fastapi import FastAPI

from keytally.auth.keys import CredentialStore
from keytally.auth.validator import AccessValidator
from keytally.errors import GenerationError
from keytally.main import create_app, lifespan
from keytally.storage.models import UsageEventFilters
from keytally.storage.sqlite_backend import LocalSQLiteBackend
from keytally.usage.counters import UsageCounters
from keytally.usage.recorder import UsageRecorder
from keytally.usage.tracker import UsageTracker


class TestCreateAppFactory:
    def test_returns_fastapi_instance(self) -> None:
        assert isinstance(create_app(), FastAPI)

    def test_independent_instances(self) -> None:
        assert create_app() is not create_app()

    def test_ready_false_before_lifespan(self) -> None:
        assert create_app().state.ready is False

    def test_routes_registered(self) -> None:
        paths = {route.path for route in create_app().routes}
        assert {
            "/health",
            "/api-key",
            "/usage-statistics",
            "/reset-usage-statistics",
            "/api/change-sign/{ival}",
        } <= paths


class TestLifespan:
    async def test_startup_wires_services(self, tmp_path: Any, monkeypatch) -> None:
        monkeypatch.setenv("KEYTALLY_DB_PATH", str(tmp_path / "life.db"))
        application = create_app()

        async with lifespan(application):
            state = application.state
            assert state.ready is True
            assert isinstance(state.storage, LocalSQLiteBackend)
            assert state.storage.db_path == str(tmp_path / "life.db")
            assert isinstance(state.credential_store, CredentialStore)
            assert isinstance(state.access_validator, AccessValidator)
            assert isinstance(state.usage_counters, UsageCounters)
            assert isinstance(state.usage_recorder, UsageRecorder)
            assert isinstance(state.usage_tracker, UsageTracker)
            assert state.usage_counters.snapshot() == {"change_sign": 0}

        assert application.state.ready is False
        assert await application.state.storage.health_check() is False

    async def test_shutdown_drains_usage_tasks(self, tmp_path: Any, monkeypatch) -> None:
        monkeypatch.setenv("KEYTALLY_DB_PATH", str(tmp_path / "drain.db"))
        application = create_app()

        async with lifespan(application):
            application.state.usage_tracker.track("kt_shutdown", "change_sign")
            storage = application.state.storage

        assert application.state.usage_tracker.pending == 0
        assert application.state.usage_counters.snapshot() == {"change_sign": 1}
        reopened = LocalSQLiteBackend(db_path=storage.db_path)
        await reopened.initialize()
        assert await reopened.count_usage_events(UsageEventFilters()) == 1
        await reopened.close()

    async def test_invalid_config_refuses_startup(
        self, tmp_path: Any, monkeypatch
    ) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("server:\n  port: 1\n")
        monkeypatch.setenv("KEYTALLY_CONFIG", str(bad))
        application = create_app()

        with pytest.raises(SystemExit):
            async with lifespan(application):
                pass
        assert application.state.ready is False

    async def test_schema_mismatch_refuses_startup(
        self, tmp_path: Any, monkeypatch
    ) -> None:
        db_path = tmp_path / "future.db"
        async with aiosqlite.connect(str(db_path)) as db:
            await db.execute("PRAGMA user_version = 5;")
            await db.commit()
        monkeypatch.setenv("KEYTALLY_DB_PATH", str(db_path))
        application = create_app()

        with pytest.raises(RuntimeError):
            async with lifespan(application):
                pass
        assert application.state.ready is False


class TestLogEvents:
    _EVENT_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")

    def _event_names(self, mock_logger: MagicMock) -> list[str]:
        calls = (
            mock_logger.info.call_args_list
            + mock_logger.warning.call_args_list
            + mock_logger.error.call_args_list
        )
        return [c.args[0] for c in calls]

    async def test_lifespan_events_are_snake_case(
        self, tmp_path: Any, monkeypatch
    ) -> None:
        monkeypatch.setenv("KEYTALLY_DB_PATH", str(tmp_path / "events.db"))
        mock_logger = MagicMock()
        monkeypatch.setattr("keytally.main.logger", mock_logger)
        application = create_app()

        async with lifespan(application):
            pass

        names = self._event_names(mock_logger)
        assert {
            "startup_begin",
            "startup_complete",
            "shutdown_begin",
            "shutdown_complete",
        } <= set(names)
        assert all(self._EVENT_NAME_RE.match(name) for name in names)

    async def test_error_handler_events_are_snake_case(
        self, app, client, memory_storage, monkeypatch
    ) -> None:
        mock_logger = MagicMock()
        monkeypatch.setattr("keytally.main.logger", mock_logger)

        memory_storage.fail = True
        assert (await client.get("/api-key")).status_code == 500
        memory_storage.fail = False

        def failing_generate() -> str:
            raise GenerationError("entropy source gone")

        monkeypatch.setattr("keytally.auth.keys.generate_api_key", failing_generate)
        assert (await client.get("/api-key")).status_code == 500

        names = self._event_names(mock_logger)
        assert "storage_failure" in names
        assert "api_key_generation_failed" in names
        assert all(self._EVENT_NAME_RE.match(name) for name in names)
