from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AppSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    dry_run: bool = False


class FileRotationSettings(BaseModel):
    """
    Date-based rotation settings (daily).

    This maps cleanly to Python's standard library TimedRotatingFileHandler behavior.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int = 5


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    path: str = "data/logs/comprehension-gate.log"
    rotation: FileRotationSettings = Field(default_factory=FileRotationSettings)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "INFO"
    file: FileLoggingSettings = Field(default_factory=FileLoggingSettings)


class BackendSettings(BaseModel):
    """Hosted database/auth/edge-function service the gate talks to."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str = "http://localhost:54321"
    api_key: str = "REPLACE_ME"
    access_token: str = ""
    request_timeout_seconds: float = 35


class GateSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Timeouts
    generation_timeout_seconds: float = 30
    resolution_timeout_seconds: float = 10
    validation_timeout_seconds: float = 15

    # Source resolution
    max_chain_depth: int = 10
    min_ocr_chars: int = 120
    min_editorial_chars: int = 50
    detect_inline_urls: bool = True

    # Reader friction: complete_reading is accepted after this long, or once the end is reached
    min_read_seconds: float = 10

    # Intent fallback (transcript unavailable)
    intent_min_words: int = 30


class PolicySettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Word-count floors for content without an external source
    publish_floor_words: int = 30
    share_floor_words: int = 30
    comment_floor_words: int = 15

    # Step thresholds
    source_only_max_words: int = 30
    mixed_max_words: int = 120
    light_gate_max_words: int = 120


class AppConfig(BaseModel):
    """Effective runtime configuration after applying all precedence rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    app: AppSettings = Field(default_factory=AppSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    gate: GateSettings = Field(default_factory=GateSettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)


@dataclass(frozen=True, slots=True)
class ConfigLoadRequest:
    """
    Optional inputs for a configuration loader.

    Implementations may use these to control where configuration is read from.
    """

    yaml_path: str = "data/config/config.yaml"
    env_prefix: str = "GATE__"
    dotenv_path: Optional[str] = ".env"
