"""Fluxdrop - text-to-image generation relayed to an image host."""

__version__ = "0.1.0"

from fluxdrop.core.config import FluxdropConfig, config

__all__ = [
    "FluxdropConfig",
    "config",
]
