"""Runtime configuration models and loaders."""

from comprehension_gate.config.interfaces import ConfigLoader
from comprehension_gate.config.loader import YamlConfigLoader
from comprehension_gate.config.models import AppConfig, ConfigLoadRequest

__all__ = ["AppConfig", "ConfigLoadRequest", "ConfigLoader", "YamlConfigLoader"]
