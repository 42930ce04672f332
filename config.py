import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ONE_SHOT_PAST_POLICIES = ("roll_forward", "skip")


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _get_env_float(name: str, default: float) -> float:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


@dataclass
class Config:
    data_dir: Path
    alarm_sound_path: Path
    alarm_sounds_dir: Path
    alarm_check_interval_ms: int
    alarm_ring_seconds: float
    early_reminder_minutes: int
    one_shot_past_policy: str
    timezone: Optional[str]
    enable_speech: bool
    log_level: str
    log_dir: Path


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    data_dir = Path(os.getenv("CLASS_ALARM_DATA_DIR", "data"))
    alarm_sound_path = Path(os.getenv("ALARM_SOUND_PATH", str(data_dir / "alarm.wav")))
    alarm_sounds_dir = Path(os.getenv("ALARM_SOUNDS_DIR", str(data_dir / "sounds")))
    alarm_check_interval_ms = _get_env_int("ALARM_CHECK_INTERVAL_MS", 800)
    alarm_ring_seconds = _get_env_float("ALARM_RING_SECONDS", 10.0)
    early_reminder_minutes = _get_env_int("EARLY_REMINDER_MINUTES", 5)
    if early_reminder_minutes < 0:
        raise ValueError("Environment variable EARLY_REMINDER_MINUTES must not be negative")
    one_shot_past_policy = os.getenv("ONE_SHOT_PAST_POLICY", "roll_forward").strip().lower()
    if one_shot_past_policy not in ONE_SHOT_PAST_POLICIES:
        raise ValueError(
            f"Environment variable ONE_SHOT_PAST_POLICY must be one of {', '.join(ONE_SHOT_PAST_POLICIES)}"
        )
    timezone = os.getenv("TIMEZONE") or None
    enable_speech = _get_env_bool("ENABLE_SPEECH", True)
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = Path(os.getenv("LOG_DIR", "logs"))

    return Config(
        data_dir=data_dir,
        alarm_sound_path=alarm_sound_path,
        alarm_sounds_dir=alarm_sounds_dir,
        alarm_check_interval_ms=alarm_check_interval_ms,
        alarm_ring_seconds=alarm_ring_seconds,
        early_reminder_minutes=early_reminder_minutes,
        one_shot_past_policy=one_shot_past_policy,
        timezone=timezone,
        enable_speech=enable_speech,
        log_level=log_level,
        log_dir=log_dir,
    )


def setup_logging(log_level: str = "INFO", log_dir: Path = Path("logs")) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    log_path = log_dir / "class_alarm.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
