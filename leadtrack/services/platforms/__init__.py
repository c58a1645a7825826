# leadtrack/services/platforms/__init__.py
"""
Ad-platform conversion adapters, one per destination.
"""
from __future__ import annotations

from typing import List, Sequence

from leadtrack.core.config import (
    GooglePlatformConfig,
    MetaPlatformConfig,
    PlatformConfig,
    SnapchatPlatformConfig,
    TikTokPlatformConfig,
)
from leadtrack.services.platforms.base import PlatformAdapter, PlatformError, PlatformRequest
from leadtrack.services.platforms.google import GoogleAdapter
from leadtrack.services.platforms.meta import MetaAdapter
from leadtrack.services.platforms.snapchat import SnapchatAdapter
from leadtrack.services.platforms.tiktok import TikTokAdapter


def build_adapter(config: PlatformConfig) -> PlatformAdapter:
    if isinstance(config, MetaPlatformConfig):
        return MetaAdapter(config)
    if isinstance(config, GooglePlatformConfig):
        return GoogleAdapter(config)
    if isinstance(config, TikTokPlatformConfig):
        return TikTokAdapter(config)
    if isinstance(config, SnapchatPlatformConfig):
        return SnapchatAdapter(config)
    raise TypeError(f"Unsupported platform config: {type(config).__name__}")


def build_adapters(configs: Sequence[PlatformConfig]) -> List[PlatformAdapter]:
    """Adapters for the enabled platforms only, in configuration order."""
    return [build_adapter(config) for config in configs if config.enabled]


__all__ = [
    "GoogleAdapter",
    "MetaAdapter",
    "PlatformAdapter",
    "PlatformError",
    "PlatformRequest",
    "SnapchatAdapter",
    "TikTokAdapter",
    "build_adapter",
    "build_adapters",
]
