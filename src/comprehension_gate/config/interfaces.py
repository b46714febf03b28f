from __future__ import annotations

from typing import Protocol

from comprehension_gate.config.models import AppConfig, ConfigLoadRequest


class ConfigLoader(Protocol):
    """
    Loads effective runtime configuration.

    Precedence, lowest first: model defaults, YAML file, environment overrides
    (`GATE__SECTION__KEY`, coerced to the setting's type). A `.env` file is loaded into the
    environment before overrides are applied, without replacing existing variables.
    """

    async def load(self, request: ConfigLoadRequest = ConfigLoadRequest()) -> AppConfig:
        ...
