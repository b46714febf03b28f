from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Sequence

import yaml
from dotenv import load_dotenv

from comprehension_gate.config.models import AppConfig, ConfigLoadRequest


def _deep_merge_dicts(base: MutableMapping[str, Any], override: Mapping[str, Any]) -> None:
    for k, v in override.items():
        if isinstance(v, Mapping) and isinstance(base.get(k), Mapping):
            _deep_merge_dicts(base[k], v)  # type: ignore[index]
            continue
        base[k] = v


def _read_yaml_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping, got: {type(data).__name__}")
    return data


def _override_path(env_var_name: str, prefix: str) -> Sequence[str]:
    parts = [p.lower() for p in env_var_name[len(prefix) :].split("__") if p]
    if not parts:
        raise ValueError(f"Invalid environment variable override name: {env_var_name}")
    return parts


def _collect_env_overrides(environ: Mapping[str, str], prefix: str) -> dict[str, Any]:
    """Nest `PREFIX__SECTION__KEY=value` variables into a mapping of raw strings."""
    overrides: dict[str, Any] = {}
    for name in sorted(environ):
        if not name.startswith(prefix):
            continue
        path = _override_path(name, prefix)
        node = overrides
        for segment in path[:-1]:
            child = node.setdefault(segment, {})
            if not isinstance(child, dict):
                raise TypeError(f"Conflicting environment overrides below: {'.'.join(path[:-1])}")
            node = child
        if isinstance(node.get(path[-1]), dict):
            raise TypeError(f"Conflicting environment overrides below: {'.'.join(path)}")
        node[path[-1]] = environ[name]
    return overrides


def _check_override_paths(config: Mapping[str, Any], overrides: Mapping[str, Any], trail: Sequence[str] = ()) -> None:
    # Overrides may only replace existing leaves. Coercion of the raw string is left to the models.
    for key, value in overrides.items():
        dotted = ".".join([*trail, key])
        if key not in config:
            raise KeyError(f"Unknown configuration key path: {dotted}")
        target = config[key]
        if isinstance(value, Mapping):
            if not isinstance(target, Mapping):
                raise TypeError(f"Configuration key path does not point to a mapping: {dotted}")
            _check_override_paths(target, value, [*trail, key])
        elif isinstance(target, Mapping):
            raise TypeError(f"Environment overrides must name a setting, not a section: {dotted}")


class YamlConfigLoader:
    async def load(self, request: ConfigLoadRequest = ConfigLoadRequest()) -> AppConfig:
        config: dict[str, Any] = copy.deepcopy(AppConfig().model_dump(mode="python"))
        _deep_merge_dicts(config, _read_yaml_config(Path(request.yaml_path)))

        if request.dotenv_path is not None and Path(request.dotenv_path).exists():
            load_dotenv(dotenv_path=request.dotenv_path, override=False)

        overrides = _collect_env_overrides(os.environ, request.env_prefix)
        _check_override_paths(config, overrides)
        _deep_merge_dicts(config, overrides)
        return AppConfig.model_validate(config)
