"""Unit tests for the typer CLI commands."""
import pytest
from typer.testing import CliRunner

import analyser.managers.refresh_manager as refresh_manager_package
import analyser.models as models_package
from analyser.cli.main import app
from analyser.config import settings
from analyser.managers.refresh_manager.orchestrator import CycleSummary
from analyser.managers.refresh_manager.outcomes import BatchReport


class RecordingManager:
    """Stands in for RefreshManager and keeps the config it was built with."""

    instances = []

    def __init__(self, governor_config=None, **kwargs):
        self.governor_config = governor_config
        self.shut_down = False
        RecordingManager.instances.append(self)

    async def run_once(self):
        return CycleSummary(
            total=0,
            skipped=0,
            persisted=0,
            errors=0,
            rate_limited=0,
            listing_source="upstream",
            report=BatchReport(),
        )

    async def shutdown(self):
        self.shut_down = True


@pytest.fixture
def recording_manager(monkeypatch):
    async def noop():
        return None

    RecordingManager.instances = []
    monkeypatch.setattr(refresh_manager_package, "RefreshManager", RecordingManager)
    monkeypatch.setattr(models_package, "init_db", noop)
    monkeypatch.setattr(models_package, "close_db", noop)
    return RecordingManager


class TestRefreshOnce:
    """refresh-once builds its governor from settings plus the CLI flags."""

    def test_flags_override_and_backoff_comes_from_settings(self, recording_manager, monkeypatch):
        monkeypatch.setattr(settings.YAHOO, "backoff_base_seconds", 5.0)
        monkeypatch.setattr(settings.YAHOO, "backoff_cap_seconds", 30.0)

        result = CliRunner().invoke(app, ["refresh-once", "--concurrency", "2", "--delay-ms", "250"])

        assert result.exit_code == 0, result.output
        [manager] = recording_manager.instances
        config = manager.governor_config
        assert (config.concurrency, config.delay_ms) == (2, 250)
        assert config.backoff_base_seconds == 5.0
        assert config.backoff_cap_seconds == 30.0
        assert manager.shut_down
        assert "Refresh Cycle" in result.output
