"""Request orchestration: validate config, generate, upload, persist.

:class:`ImageOrchestrator` runs one request through a fixed sequence of
stages::

    VALIDATING_CONFIG -> GENERATING -> UPLOADING -> (PERSISTING) -> DONE

Each stage depends on the previous one's result, so the calls are strictly
sequential and every upstream is called at most once.  A failure at any
stage stops the chain and is raised as :class:`OrchestrationFailed`, which
carries the stage, the HTTP status the API should answer with, and a
user-facing message.  Nothing later in the chain runs after a failure, so a
record is never written unless the upload succeeded.

Status mapping
--------------
- Missing configuration: 500.
- Generation upstream error: the upstream's own status.
- Generation contract violation or other failure: 500.
- Upload failure of any kind: 500.
- Persistence failure: 500.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import httpx
from fastapi.concurrency import run_in_threadpool

from fluxdrop.core.config import FluxdropConfig
from fluxdrop.core.errors import ConfigurationError, ContractViolation, UpstreamError
from fluxdrop.core.generation_client import GenerationClient
from fluxdrop.core.hosting_client import HostingClient
from fluxdrop.core.models import GenerationRequest, GenerationResult, HostedImage
from fluxdrop.core.records import RecordStore, get_record_store

logger = logging.getLogger(__name__)

SERVER_ERROR = 500

# Messages shown to the user when a setting is missing.
CONFIGURATION_MESSAGES = {
    "together_api_key": "API key is not configured",
    "imgbb_api_key": "ImgBB API key is not configured",
    "database_url": "Database URL is not configured",
}


class Stage(str, Enum):
    VALIDATING_CONFIG = "validating_config"
    GENERATING = "generating"
    UPLOADING = "uploading"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass(frozen=True)
class GenerationOutcome:
    """Everything a successful request returns."""

    image: str
    imgbb_url: str
    db_id: int | None = None


class OrchestrationFailed(Exception):
    """A stage failed; the chain stopped there.

    Attributes:
        stage: Stage that failed.
        status_code: HTTP status to report.
        message: User-facing error text.
    """

    def __init__(self, stage: Stage, status_code: int, message: str) -> None:
        super().__init__(message)
        self.stage = stage
        self.status_code = status_code
        self.message = message


class ImageOrchestrator:
    """Run the generate -> upload -> persist chain for one request.

    Args:
        config: Settings read for this request.
        generator: Generation API client.
        host: Image hosting client.
        store_provider: Returns the record store for a database URL.  Only
            called when persistence is enabled and the chain reaches that
            stage.
    """

    def __init__(
        self,
        config: FluxdropConfig,
        generator: GenerationClient,
        host: HostingClient,
        store_provider: Callable[[str], RecordStore] = get_record_store,
    ) -> None:
        self.config = config
        self.generator = generator
        self.host = host
        self.store_provider = store_provider
        self.stage = Stage.VALIDATING_CONFIG

    @classmethod
    def from_config(
        cls,
        config: FluxdropConfig,
        http: httpx.AsyncClient,
        store_provider: Callable[[str], RecordStore] = get_record_store,
    ) -> ImageOrchestrator:
        """Build an orchestrator with clients wired from *config*."""
        generator = GenerationClient(
            http,
            config.together_api_key,
            url=config.generation_url,
            model=config.generation_model,
            timeout_seconds=config.request_timeout_seconds,
        )
        host = HostingClient(
            http,
            config.imgbb_api_key,
            url=config.hosting_url,
            timeout_seconds=config.request_timeout_seconds,
        )
        return cls(config, generator, host, store_provider)

    async def run(self, request: GenerationRequest) -> GenerationOutcome:
        """Process *request* through every stage.

        Raises:
            OrchestrationFailed: At the first failing stage.
        """
        self._validate_config()
        result = await self._generate(request)
        hosted = await self._upload(result)

        db_id = None
        if self.config.persistence_enabled:
            db_id = await self._persist(request, hosted)

        self.stage = Stage.DONE
        return GenerationOutcome(image=result.image_data, imgbb_url=hosted.url, db_id=db_id)

    def _validate_config(self) -> None:
        self.stage = Stage.VALIDATING_CONFIG
        missing = self.config.missing_settings()
        if not missing:
            return

        setting = missing[0]
        error = ConfigurationError(setting, CONFIGURATION_MESSAGES[setting])
        logger.error(f"{setting.upper()} is not set")
        raise OrchestrationFailed(self.stage, SERVER_ERROR, str(error)) from error

    async def _generate(self, request: GenerationRequest) -> GenerationResult:
        self.stage = Stage.GENERATING
        try:
            result = await self.generator.generate(request)
        except UpstreamError as e:
            status = e.status_code if e.status_code >= 400 else 502
            raise OrchestrationFailed(self.stage, status, str(e)) from e
        except ContractViolation as e:
            raise OrchestrationFailed(self.stage, SERVER_ERROR, str(e)) from e
        except Exception as e:
            logger.exception("Error generating image")
            raise OrchestrationFailed(self.stage, SERVER_ERROR, _chain_failure(e)) from e

        logger.info("Image generated")
        return result

    async def _upload(self, result: GenerationResult) -> HostedImage:
        self.stage = Stage.UPLOADING
        try:
            hosted = await self.host.upload(result)
        except Exception as e:
            logger.error(f"Error uploading image: {e}")
            raise OrchestrationFailed(self.stage, SERVER_ERROR, _chain_failure(e)) from e

        logger.info(f"Image uploaded to {hosted.url}")
        return hosted

    async def _persist(self, request: GenerationRequest, hosted: HostedImage) -> int:
        self.stage = Stage.PERSISTING
        try:
            store = self.store_provider(self.config.database_url)
            record_id = await run_in_threadpool(
                store.add,
                prompt=request.prompt,
                width=request.width,
                height=request.height,
                steps=request.steps,
                n=request.n,
                image_url=hosted.url,
            )
        except Exception as e:
            logger.error(f"Error saving generation record: {e}")
            raise OrchestrationFailed(self.stage, SERVER_ERROR, f"Failed to save generation record: {e}") from e

        return record_id


def _chain_failure(error: Exception) -> str:
    return f"Failed to generate or upload image: {error}"
