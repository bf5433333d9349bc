"""Client for the Together text-to-image generation API.

Processing flow:
    1. Build the JSON payload from a :class:`GenerationRequest`, adding the
       fixed model identifier and ``response_format="b64_json"``.
    2. POST it once with bearer-token auth.
    3. Non-success status -> :class:`UpstreamError` with status and body.
    4. Decode the body against the expected ``{data: [{b64_json}]}`` shape;
       anything else -> :class:`ContractViolation`.
    5. Return the first image only.  ``n`` is forwarded unchanged but extra
       images are ignored.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, Field, ValidationError

from fluxdrop.core.config import DEFAULT_GENERATION_MODEL, DEFAULT_GENERATION_URL
from fluxdrop.core.errors import ContractViolation, UpstreamError
from fluxdrop.core.http import post_once
from fluxdrop.core.models import GenerationRequest, GenerationResult

logger = logging.getLogger(__name__)

SERVICE_NAME = "generation"


class _GeneratedImage(BaseModel):
    b64_json: str = Field(min_length=1)


class _GenerationResponse(BaseModel):
    data: list[_GeneratedImage] = Field(min_length=1)


class GenerationClient:
    """Send one generation request and return the first image's base64 data.

    Args:
        http: Shared async HTTP client.
        api_key: Together API key, sent as a bearer token.
        url: Generation endpoint.
        model: Model identifier included in every payload.
        timeout_seconds: Bound for the call.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str | None,
        *,
        url: str = DEFAULT_GENERATION_URL,
        model: str = DEFAULT_GENERATION_MODEL,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.http = http
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout_seconds = timeout_seconds

    def build_payload(self, request: GenerationRequest) -> dict:
        """Return the JSON body for *request*."""
        return {
            "model": self.model,
            **request.to_payload(),
            "response_format": "b64_json",
        }

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Generate an image for *request*.

        Raises:
            UpstreamError: Non-success status, timeout, or unreachable host.
            ContractViolation: Success status with an unexpected body.
        """
        payload = self.build_payload(request)
        logger.debug(
            f"Requesting generation: model={self.model} "
            f"width={request.width} height={request.height} steps={request.steps} n={request.n}"
        )

        response = await post_once(
            self.http,
            self.url,
            service=SERVICE_NAME,
            timeout_seconds=self.timeout_seconds,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

        if not response.is_success:
            logger.error(f"Generation API response error: {response.status_code} {response.text}")
            raise UpstreamError(SERVICE_NAME, response.status_code, response.text)

        return GenerationResult(image_data=decode_generation_response(response))


def decode_generation_response(response: httpx.Response) -> str:
    """Extract the first base64 image from a successful generation response.

    Raises:
        ContractViolation: Body is not JSON or lacks ``data[0].b64_json``.
    """
    try:
        decoded = _GenerationResponse.model_validate_json(response.content)
    except ValidationError as e:
        logger.error(f"Unexpected generation API response structure: {response.text[:500]}")
        raise ContractViolation("Unexpected API response structure") from e

    if len(decoded.data) > 1:
        logger.info(f"Generation API returned {len(decoded.data)} images; using the first")
    return decoded.data[0].b64_json
