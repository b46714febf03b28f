from __future__ import annotations

import asyncio
import logging

from comprehension_gate.config import YamlConfigLoader
from comprehension_gate.config.models import ConfigLoadRequest
from comprehension_gate.logging import init_logging


async def main() -> None:
    config = await YamlConfigLoader().load(ConfigLoadRequest(yaml_path="examples/config.yaml"))
    init_logging(config.logging)

    logger = logging.getLogger("smoke")
    logger.info("Config loaded dry_run=%s backend=%s", config.app.dry_run, config.backend.base_url)
    logger.info("Logging level=%s", config.logging.level)
    logger.info(
        "Gate timeouts generation=%ss resolution=%ss validation=%ss",
        config.gate.generation_timeout_seconds,
        config.gate.resolution_timeout_seconds,
        config.gate.validation_timeout_seconds,
    )


if __name__ == "__main__":
    asyncio.run(main())
