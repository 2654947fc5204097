"""
Video provider adapters, keyed by provider tag.
"""

from .base import VideoProvider, resolve_size
from .openai_video import OpenAIVideoProvider
from .wavespeed_video import WaveSpeedVideoProvider

PROVIDER_CLASSES: dict[str, type[VideoProvider]] = {
    OpenAIVideoProvider.name: OpenAIVideoProvider,
    WaveSpeedVideoProvider.name: WaveSpeedVideoProvider,
}

__all__ = [
    "VideoProvider",
    "OpenAIVideoProvider",
    "WaveSpeedVideoProvider",
    "PROVIDER_CLASSES",
    "resolve_size",
]
