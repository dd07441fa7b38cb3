"""Configuration module for the edge layer."""

from arbedge.config.constants import (
    DEFAULT_ENGINE_URL,
    OPPORTUNITIES_CACHE_SWR,
    OPPORTUNITIES_CACHE_TTL,
    SAFETY_CACHE_SWR,
    SAFETY_CACHE_TTL,
)
from arbedge.config.settings import Settings, get_settings


__all__ = [
    "DEFAULT_ENGINE_URL",
    "OPPORTUNITIES_CACHE_SWR",
    "OPPORTUNITIES_CACHE_TTL",
    "SAFETY_CACHE_SWR",
    "SAFETY_CACHE_TTL",
    "Settings",
    "get_settings",
]
