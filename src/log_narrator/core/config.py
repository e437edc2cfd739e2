"""
Configuration Management for log-narrator.

Configuration Hierarchy (highest priority first):
    1. Command-line overrides (applied by cli.py via Settings.merged)
    2. Environment variables (SEIKA_*, LOG_NARRATOR_*)
    3. YAML settings file
    4. Defaults class values

Settings file search order when no explicit path is given:
    1. $LOG_NARRATOR_SETTINGS
    2. ./log-narrator.yaml
    3. ~/.config/log-narrator/config.yaml

Example log-narrator.yaml:
    log:
      project_dir: /home/me/src/app
      poll_interval_s: 2.0

    tts:
      host: localhost
      port: 7180
      cid: 60041
      speed: 1.0
      max_text_length: 100
      emotions:
        joy: 0.5

    playback:
      command: "afplay"

    logging:
      level: 2
"""
from __future__ import annotations

import copy
import json
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or mistyped."""
    pass


class Defaults:
    """Centralized default configuration values."""

    # ─────────────────────────────────────────────────────────────────────────
    # Log tailing
    # ─────────────────────────────────────────────────────────────────────────
    TAIL_POLL_INTERVAL_S = 2.0          # Fallback rescan for missed change events

    # ─────────────────────────────────────────────────────────────────────────
    # Message extraction
    # ─────────────────────────────────────────────────────────────────────────
    EXTRACT_CODE_PLACEHOLDER = "There is a code block."

    # ─────────────────────────────────────────────────────────────────────────
    # Speech scheduling
    # ─────────────────────────────────────────────────────────────────────────
    SCHEDULER_MAX_CHUNK_CHARS = 100     # Longest text sent in one request
    SCHEDULER_INTER_CHUNK_PAUSE_S = 0.3 # Silence between chunks of one task
    SCHEDULER_SCRATCH_DIR_NAME = "log-narrator"

    # ─────────────────────────────────────────────────────────────────────────
    # TTS backend
    # ─────────────────────────────────────────────────────────────────────────
    TTS_SCHEME = "http"
    TTS_HOST = "localhost"
    TTS_PORT = 7180
    TTS_USERNAME = "SeikaServerUser"
    TTS_PASSWORD = "SeikaServerPassword"
    TTS_CID = 60041
    TTS_TIMEOUT_S = 30.0
    TTS_SPEED = 1.0
    TTS_PITCH = 1.0
    TTS_VOLUME = 1.0
    TTS_INTONATION = 1.0

    # ─────────────────────────────────────────────────────────────────────────
    # Playback
    # ─────────────────────────────────────────────────────────────────────────
    PLAYBACK_TIMEOUT_S = 120.0

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_LEVEL = 2                   # 1=MINIMAL, 2=NORMAL, 3=VERBOSE, 4=DEBUG
    LOGGING_TEXT_PREVIEW_CHARS = 60

    # ─────────────────────────────────────────────────────────────────────────
    # Control API
    # ─────────────────────────────────────────────────────────────────────────
    API_ENABLED = False
    API_HOST = "127.0.0.1"
    API_PORT = 8765


SETTINGS_SEARCH_PATHS = (
    Path("log-narrator.yaml"),
    Path.home() / ".config" / "log-narrator" / "config.yaml",
)

# Environment variable -> (section, key, converter)
_ENV_OVERRIDES = {
    "SEIKA_HOST": ("tts", "host", str),
    "SEIKA_PORT": ("tts", "port", int),
    "SEIKA_USERNAME": ("tts", "username", str),
    "SEIKA_PASSWORD": ("tts", "password", str),
    "SEIKA_CID": ("tts", "cid", int),
    "SEIKA_SPEED": ("tts", "speed", float),
    "SEIKA_PITCH": ("tts", "pitch", float),
    "SEIKA_VOLUME": ("tts", "volume", float),
    "SEIKA_INTONATION": ("tts", "intonation", float),
    "SEIKA_EMOTIONS": ("tts", "emotions", str),
    "SEIKA_TEMP_DIR": ("tts", "temp_dir", str),
    "SEIKA_MAX_TEXT_LENGTH": ("tts", "max_text_length", int),
    "SEIKA_PLAY_COMMAND": ("playback", "command", str),
    "LOG_NARRATOR_SESSION_ID": ("log", "session_id", str),
    "LOG_NARRATOR_PROJECT_DIR": ("log", "project_dir", str),
}


@dataclass(frozen=True)
class TailConfig:
    """Which log file to follow and how often to look at it."""
    log_file: Optional[str] = None
    session_id: Optional[str] = None
    project_dir: Optional[str] = None
    projects_root: Optional[str] = None
    poll_interval_s: float = Defaults.TAIL_POLL_INTERVAL_S


@dataclass(frozen=True)
class ExtractConfig:
    """Code-block masking options."""
    code_placeholder: str = Defaults.EXTRACT_CODE_PLACEHOLDER


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Speech task scheduling.

    ``base_speed`` is the backend's configured speed; queue-depth and length
    based overrides are computed relative to it.
    """
    max_chunk_chars: int = Defaults.SCHEDULER_MAX_CHUNK_CHARS
    base_speed: float = Defaults.TTS_SPEED
    inter_chunk_pause_s: float = Defaults.SCHEDULER_INTER_CHUNK_PAUSE_S
    scratch_dir: str = str(Path(tempfile.gettempdir()) / Defaults.SCHEDULER_SCRATCH_DIR_NAME)


@dataclass(frozen=True)
class BackendConfig:
    """Connection, voice and effect parameters for the TTS backend."""
    scheme: str = Defaults.TTS_SCHEME
    host: str = Defaults.TTS_HOST
    port: int = Defaults.TTS_PORT
    username: str = Defaults.TTS_USERNAME
    password: str = Defaults.TTS_PASSWORD
    cid: int = Defaults.TTS_CID
    timeout_s: float = Defaults.TTS_TIMEOUT_S
    speed: float = Defaults.TTS_SPEED
    pitch: float = Defaults.TTS_PITCH
    volume: float = Defaults.TTS_VOLUME
    intonation: float = Defaults.TTS_INTONATION
    emotions: Dict[str, float] = field(default_factory=dict)

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def effects(self) -> Dict[str, float]:
        return {
            "speed": self.speed,
            "volume": self.volume,
            "pitch": self.pitch,
            "intonation": self.intonation,
        }


@dataclass(frozen=True)
class PlaybackConfig:
    """``command`` replaces the platform default player; the file path is appended."""
    command: Optional[str] = None
    timeout_s: float = Defaults.PLAYBACK_TIMEOUT_S


@dataclass(frozen=True)
class LoggingConfig:
    level: int = Defaults.LOGGING_LEVEL
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS


@dataclass(frozen=True)
class ApiConfig:
    enabled: bool = Defaults.API_ENABLED
    host: str = Defaults.API_HOST
    port: int = Defaults.API_PORT


@dataclass(frozen=True)
class NarratorConfig:
    """
    Validated, immutable configuration handed to every component.

    Usage:
        settings = load_settings()
        config = NarratorConfig.from_settings(settings)
        print(config.scheduler.max_chunk_chars)
    """
    tail: TailConfig = field(default_factory=TailConfig)
    extract: ExtractConfig = field(default_factory=ExtractConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "NarratorConfig":
        """
        Build a validated config from raw settings.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Log tailing
        # ─────────────────────────────────────────────────────────────────────
        log_raw = raw.get("log", {}) or {}
        tail = TailConfig(
            log_file=_optional_str(log_raw.get("file")),
            session_id=_optional_str(log_raw.get("session_id")),
            project_dir=_optional_str(log_raw.get("project_dir")),
            projects_root=_optional_str(log_raw.get("projects_root")),
            poll_interval_s=float(log_raw.get("poll_interval_s", Defaults.TAIL_POLL_INTERVAL_S)),
        )
        cls._validate_positive("log.poll_interval_s", tail.poll_interval_s)

        extract_raw = raw.get("extract", {}) or {}
        extract = ExtractConfig(
            code_placeholder=str(extract_raw.get("code_placeholder", Defaults.EXTRACT_CODE_PLACEHOLDER)),
        )

        # ─────────────────────────────────────────────────────────────────────
        # TTS backend
        # ─────────────────────────────────────────────────────────────────────
        tts_raw = raw.get("tts", {}) or {}
        backend = BackendConfig(
            scheme=str(tts_raw.get("scheme", Defaults.TTS_SCHEME)),
            host=str(tts_raw.get("host", Defaults.TTS_HOST)),
            port=int(tts_raw.get("port", Defaults.TTS_PORT)),
            username=str(tts_raw.get("username", Defaults.TTS_USERNAME)),
            password=str(tts_raw.get("password", Defaults.TTS_PASSWORD)),
            cid=int(tts_raw.get("cid", Defaults.TTS_CID)),
            timeout_s=float(tts_raw.get("timeout_s", Defaults.TTS_TIMEOUT_S)),
            speed=float(tts_raw.get("speed", Defaults.TTS_SPEED)),
            pitch=float(tts_raw.get("pitch", Defaults.TTS_PITCH)),
            volume=float(tts_raw.get("volume", Defaults.TTS_VOLUME)),
            intonation=float(tts_raw.get("intonation", Defaults.TTS_INTONATION)),
            emotions=_parse_emotions(tts_raw.get("emotions")),
        )
        if backend.scheme not in ("http", "https"):
            raise ConfigValidationError(f"tts.scheme must be http or https, got {backend.scheme}")
        cls._validate_range("tts.port", backend.port, 1, 65535)
        cls._validate_positive("tts.timeout_s", backend.timeout_s)
        cls._validate_range("tts.speed", backend.speed, 0.5, 2.0)
        cls._validate_range("tts.pitch", backend.pitch, 0.5, 2.0)
        cls._validate_range("tts.volume", backend.volume, 0.0, 2.0)
        cls._validate_range("tts.intonation", backend.intonation, 0.0, 2.0)

        # ─────────────────────────────────────────────────────────────────────
        # Scheduling
        # ─────────────────────────────────────────────────────────────────────
        temp_dir = _optional_str(tts_raw.get("temp_dir"))
        scheduler = SchedulerConfig(
            max_chunk_chars=int(tts_raw.get("max_text_length", Defaults.SCHEDULER_MAX_CHUNK_CHARS)),
            base_speed=backend.speed,
            inter_chunk_pause_s=float(tts_raw.get("inter_chunk_pause_s", Defaults.SCHEDULER_INTER_CHUNK_PAUSE_S)),
            scratch_dir=temp_dir or SchedulerConfig().scratch_dir,
        )
        cls._validate_positive("tts.max_text_length", scheduler.max_chunk_chars)
        cls._validate_non_negative("tts.inter_chunk_pause_s", scheduler.inter_chunk_pause_s)

        playback_raw = raw.get("playback", {}) or {}
        playback = PlaybackConfig(
            command=_optional_str(playback_raw.get("command")),
            timeout_s=float(playback_raw.get("timeout_s", Defaults.PLAYBACK_TIMEOUT_S)),
        )
        cls._validate_positive("playback.timeout_s", playback.timeout_s)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        from log_narrator.core.logging.levels import coerce_level
        logging_cfg = LoggingConfig(
            level=int(coerce_level(logging_raw.get("level", Defaults.LOGGING_LEVEL))),
            text_preview_chars=int(logging_raw.get("text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)

        api_raw = raw.get("api", {}) or {}
        api = ApiConfig(
            enabled=bool(api_raw.get("enabled", Defaults.API_ENABLED)),
            host=str(api_raw.get("host", Defaults.API_HOST)),
            port=int(api_raw.get("port", Defaults.API_PORT)),
        )
        cls._validate_range("api.port", api.port, 1, 65535)

        return cls(
            tail=tail,
            extract=extract,
            scheduler=scheduler,
            backend=backend,
            playback=playback,
            logging=logging_cfg,
            api=api,
        )

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Plain-dict view for ``log-narrator config``; hides the password by default."""
        from dataclasses import asdict
        data = asdict(self)
        if redact and data["backend"]["password"]:
            data["backend"]["password"] = "***"
        return data

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_emotions(value: Any) -> Dict[str, float]:
    """Accept a mapping or a JSON object string; anything unparsable is dropped with a warning."""
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            _warn_config("emotions_ignored", reason=str(e))
            return {}
    if not isinstance(value, dict):
        _warn_config("emotions_ignored", reason=f"expected an object, got {type(value).__name__}")
        return {}
    try:
        return {str(k): float(v) for k, v in value.items()}
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"tts.emotions values must be numbers: {e}") from e


def _warn_config(msg: str, **fields: Any) -> None:
    from log_narrator.core.logging import get_logger, warn
    warn(get_logger("log-narrator.config"), msg, **fields)


@dataclass(frozen=True)
class Settings:
    """
    Immutable raw settings (YAML + environment) before validation.

    Use ``get_config()`` for the validated NarratorConfig.
    """
    raw: Dict[str, Any]
    source: Optional[str] = None

    def merged(self, overrides: Dict[str, Dict[str, Any]]) -> "Settings":
        """Return new Settings with per-section overrides applied; None values are skipped."""
        raw = copy.deepcopy(self.raw)
        for section, values in overrides.items():
            target = raw.setdefault(section, {}) or {}
            raw[section] = target
            for key, value in values.items():
                if value is not None:
                    target[key] = value
        return Settings(raw=raw, source=self.source)

    def get_config(self) -> NarratorConfig:
        return NarratorConfig.from_settings(self)


def _find_settings_file() -> Optional[Path]:
    env_path = os.getenv("LOG_NARRATOR_SETTINGS")
    candidates: List[Path] = [Path(env_path)] if env_path else []
    candidates.extend(SETTINGS_SEARCH_PATHS)
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay SEIKA_* / LOG_NARRATOR_* environment variables onto raw settings."""
    for env_name, (section, key, convert) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value is None or value == "":
            continue
        try:
            converted = convert(value)
        except ValueError as e:
            raise ConfigValidationError(f"{env_name} has an invalid value: {value!r}") from e
        section_raw = raw.get(section)
        if not isinstance(section_raw, dict):
            section_raw = {}
            raw[section] = section_raw
        section_raw[key] = converted
    return raw


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from YAML and the environment.

    Args:
        path: Explicit settings file. When omitted, the search paths are
            tried and built-in defaults are used if none exists.

    Returns:
        Settings with environment overrides applied.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigValidationError: If the file is not a YAML mapping or an
            environment override cannot be converted.
    """
    if path is not None:
        p: Optional[Path] = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"settings file not found: {p.resolve()}")
    else:
        p = _find_settings_file()

    raw: Dict[str, Any] = {}
    if p is not None:
        with p.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ConfigValidationError(f"settings file must contain a mapping: {p}")
        raw = loaded

    return Settings(raw=apply_env_overrides(raw), source=str(p) if p else None)
