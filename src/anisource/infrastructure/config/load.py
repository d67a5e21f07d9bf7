"""Build the validated AppConfig from its layers.

Precedence (later wins): built-in defaults < YAML file < ``ANISOURCE_*``
environment (``.env`` included) < CLI overrides.  Every layer is brought
into the sectioned YAML shape first, then merged key by key, so a YAML
``resolver.mapping`` block survives a CLI ``--profile`` override.
Nothing is written to disk.
"""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

# Flat key (env var suffix / CLI override) -> (section, key in section).
_FLAT_KEYS: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_user_agent": ("http", "user_agent"),
    "anilist_url": ("metadata", "anilist_url"),
    "metadata_timeout_seconds": ("metadata", "timeout_seconds"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
    "cache_ttl_seconds": ("cache", "ttl_seconds"),
    "cache_max_entries": ("cache", "max_entries"),
    "resolver_profile": ("resolver", "profile"),
    "resolver_policy": ("resolver", "policy"),
    "resolver_cache_ttl_seconds": ("resolver", "cache_ttl_seconds"),
    "resolver_preferred_source_mode": ("resolver", "preferred_source_mode"),
    "resolver_max_title_attempts": ("resolver", "max_title_attempts"),
}

_SECTIONS: frozenset[str] = frozenset(section for section, _ in _FLAT_KEYS.values())
_TOP_LEVEL: tuple[str, ...] = ("app_name", "environment")


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge *override* into *base* in place; nested mappings merge, the rest replaces."""
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _deep_merge(current, value)
        else:
            base[key] = deepcopy(value)
    return base


def _normalize_layer(data: Mapping[str, Any]) -> dict[str, Any]:
    """Bring one layer into the sectioned shape.

    Sectioned blocks (``resolver: {...}``) are copied; flat keys such as
    ``resolver_policy`` are folded into their section.  Unknown keys are
    dropped here and never reach validation.
    """
    out: dict[str, Any] = {
        key: deepcopy(dict(data[key]))
        for key in _SECTIONS
        if isinstance(data.get(key), Mapping)
    }
    for key in _TOP_LEVEL:
        if key in data:
            out[key] = data[key]
    for flat_key, (section, section_key) in _FLAT_KEYS.items():
        if flat_key in data:
            out.setdefault(section, {})[section_key] = data[flat_key]
    return out


def _read_yaml_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise FileNotFoundError(config_path)
    parsed = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """Load, merge and validate the configuration layers.

    Raises:
        FileNotFoundError: an explicit *config_path* or *dotenv_path* is missing.
        ValueError: the YAML document is not a mapping.
        pydantic.ValidationError: the merged result is invalid
            (unknown profile, non-positive timeout, ...).
    """
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        # Real environment variables keep priority over the .env file.
        load_dotenv(dotenv_path, override=False)

    layers: list[Mapping[str, Any]] = [DEFAULT_CONFIG]
    if config_path is not None:
        layers.append(_read_yaml_config(config_path))
    layers.append(EnvOverrides().to_update_dict())
    layers.append(cli_overrides or {})

    merged: dict[str, Any] = {}
    for layer in layers:
        _deep_merge(merged, _normalize_layer(layer))
    return AppConfig.model_validate(merged)
