"""Hardcoded default configuration values and resolver profiles."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "anisource",
    "environment": "dev",
    "http": {
        "timeout_seconds": 15.0,
        "user_agent": None,  # Browser-like default from sources.constants
    },
    "metadata": {
        "anilist_url": "https://graphql.anilist.co",
        "timeout_seconds": 8.0,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "ttl_seconds": 900,
        "max_entries": 2048,
    },
    "resolver": {
        "profile": "default",
    },
}

# Deployment profiles: one parameterized pipeline, several tunings.
# Explicit ``resolver.*`` settings are layered on top of the chosen profile.
RESOLVER_PROFILES: dict[str, dict[str, Any]] = {
    "default": {
        "policy": "sequential",
        "sources": ["satoru", "watchanimeworld", "animeworld"],
        "cache_ttl_seconds": 900,
        "preferred_source_mode": "strict",
        "max_title_attempts": 2,
        "source_timeouts": {},
        "mapping": {},
    },
    "fast": {
        "policy": "parallel",
        "sources": ["satoru", "watchanimeworld", "animeworld"],
        "cache_ttl_seconds": 900,
        "preferred_source_mode": "soft",
        "max_title_attempts": 1,
        "source_timeouts": {
            "satoru": 8.0,
            "watchanimeworld": 8.0,
            "animeworld": 10.0,
        },
        "mapping": {
            "enabled_kinds": ["EXACT", "PATTERN_CALCULATED"],
            "season_ceiling": 20,
            "probe_concurrency": 4,
        },
    },
    "thorough": {
        "policy": "sequential",
        "sources": ["satoru", "watchanimeworld", "animeworld"],
        "cache_ttl_seconds": 1800,
        "preferred_source_mode": "strict",
        "max_title_attempts": 3,
        "source_timeouts": {
            "satoru": 30.0,
            "watchanimeworld": 30.0,
            "animeworld": 60.0,
        },
        "mapping": {},
    },
}
