"""
Settings tests.
"""

import pytest
from pydantic import ValidationError

from agent_teams import AgentTeamOptions, TeammateRunnerOptions
from agent_teams.config import Settings
from agent_teams.models import TeamEnv


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = Settings()
    assert settings.base_dir == ".agent-teams"
    assert settings.poll_interval_ms == 500
    assert settings.heartbeat_interval_ms == 5000
    assert settings.heartbeat_timeout_ms == 30000
    assert settings.lock_timeout == 10.0


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AGENT_TEAMS_POLL_INTERVAL_MS", "50")
    monkeypatch.setenv("AGENT_TEAMS_BASE_DIR", "/srv/teams")
    settings = Settings()
    assert settings.poll_interval_ms == 50
    assert settings.base_dir == "/srv/teams"


def test_dotenv_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("AGENT_TEAMS_HEARTBEAT_TIMEOUT_MS=1234\n")
    assert Settings().heartbeat_timeout_ms == 1234


def test_invalid_interval_rejected(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValidationError):
        Settings(poll_interval_ms=0)


def test_options_from_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = Settings(base_dir=str(tmp_path), poll_interval_ms=20, stop_timeout=1.0)

    team_options = AgentTeamOptions.from_settings(settings, "t", [], heartbeat_timeout_ms=99)
    assert team_options.base_dir == str(tmp_path)
    assert team_options.poll_interval_ms == 20
    assert team_options.stop_timeout == 1.0
    assert team_options.heartbeat_timeout_ms == 99

    runner_options = TeammateRunnerOptions.from_env({
        TeamEnv.TEAM_NAME: "t",
        TeamEnv.BASE_DIR: str(tmp_path),
        TeamEnv.AGENT_ID: "worker-1",
        TeamEnv.SESSION_ID: "s",
    }, settings)
    assert runner_options.poll_interval_ms == 20
