from pathlib import Path

import pytest

from config import load_config

ENV_NAMES = ("CLASS_ALARM_DATA_DIR", "EARLY_REMINDER_MINUTES", "ONE_SHOT_PAST_POLICY", "LOG_LEVEL", "TIMEZONE")


def _clear_env(monkeypatch) -> None:
    # setenv first so teardown also removes values that load_dotenv writes
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_defaults(monkeypatch, tmp_path):
    _clear_env(monkeypatch)
    config = load_config(tmp_path / "missing.env")
    assert config.data_dir == Path("data")
    assert config.alarm_sound_path == Path("data") / "alarm.wav"
    assert config.early_reminder_minutes == 5
    assert config.one_shot_past_policy == "roll_forward"
    assert config.timezone is None
    assert config.log_level == "INFO"


def test_env_file_overrides(monkeypatch, tmp_path):
    _clear_env(monkeypatch)
    env = tmp_path / ".env"
    env.write_text("CLASS_ALARM_DATA_DIR=/tmp/alarms\nEARLY_REMINDER_MINUTES=10\nONE_SHOT_PAST_POLICY=skip\n")
    config = load_config(env)
    assert config.data_dir == Path("/tmp/alarms")
    assert config.early_reminder_minutes == 10
    assert config.one_shot_past_policy == "skip"


def test_invalid_values_name_the_variable(monkeypatch, tmp_path):
    _clear_env(monkeypatch)
    monkeypatch.setenv("EARLY_REMINDER_MINUTES", "five")
    with pytest.raises(ValueError, match="EARLY_REMINDER_MINUTES"):
        load_config(tmp_path / "missing.env")
    monkeypatch.setenv("EARLY_REMINDER_MINUTES", "5")
    monkeypatch.setenv("ONE_SHOT_PAST_POLICY", "sometimes")
    with pytest.raises(ValueError, match="ONE_SHOT_PAST_POLICY"):
        load_config(tmp_path / "missing.env")
