"""Core functionality for the generate -> upload -> persist chain.

- **FluxdropConfig**: settings loaded from the environment (pydantic-settings)
- **GenerationClient**: calls the text-to-image API
- **HostingClient**: uploads the generated image to the image host
- **RecordStore**: optional relational store for completed generations
- **ImageOrchestrator**: runs the three calls in order for one request

Usage Example
-------------
    import httpx

    from fluxdrop.core import FluxdropConfig, ImageOrchestrator
    from fluxdrop.core.models import GenerationRequest

    cfg = FluxdropConfig()
    async with httpx.AsyncClient() as http:
        orchestrator = ImageOrchestrator.from_config(cfg, http)
        outcome = await orchestrator.run(
            GenerationRequest(prompt="a red cube", width=512, height=512, steps=4, n=1)
        )
"""

from fluxdrop.core.config import FluxdropConfig, config
from fluxdrop.core.errors import (
    ConfigurationError,
    ContractViolation,
    FluxdropError,
    PersistenceError,
    UpstreamError,
)
from fluxdrop.core.orchestrator import ImageOrchestrator, OrchestrationFailed, Stage

__all__ = [
    "ConfigurationError",
    "ContractViolation",
    "FluxdropConfig",
    "FluxdropError",
    "ImageOrchestrator",
    "OrchestrationFailed",
    "PersistenceError",
    "Stage",
    "UpstreamError",
    "config",
]
