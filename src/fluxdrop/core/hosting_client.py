"""Client for the ImgBB image hosting API.

The upload is a single form-encoded POST carrying the API key and the
base64 image.  The hosted URL sits at ``data.url`` in the response; it is
decoded explicitly so a missing field becomes a :class:`ContractViolation`.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, Field, ValidationError

from fluxdrop.core.config import DEFAULT_HOSTING_URL
from fluxdrop.core.errors import ContractViolation, UpstreamError
from fluxdrop.core.http import post_once
from fluxdrop.core.models import GenerationResult, HostedImage

logger = logging.getLogger(__name__)

SERVICE_NAME = "hosting"
ERROR_PREFIX = "ImgBB API error"


class _UploadedImage(BaseModel):
    url: str = Field(min_length=1)


class _UploadResponse(BaseModel):
    data: _UploadedImage


class HostingClient:
    """Upload generated images to ImgBB.

    Args:
        http: Shared async HTTP client.
        api_key: ImgBB upload key.
        url: Upload endpoint.
        timeout_seconds: Bound for the call.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str | None,
        *,
        url: str = DEFAULT_HOSTING_URL,
        timeout_seconds: float = 60.0,
    ) -> None:
        self.http = http
        self.api_key = api_key
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def upload(self, result: GenerationResult) -> HostedImage:
        """Upload *result* and return where it is hosted.

        Raises:
            UpstreamError: Non-success status, timeout, or unreachable host.
            ContractViolation: Success status without ``data.url``.
        """
        response = await post_once(
            self.http,
            self.url,
            service=SERVICE_NAME,
            timeout_seconds=self.timeout_seconds,
            error_prefix=ERROR_PREFIX,
            data={"key": self.api_key or "", "image": result.image_data},
        )

        if not response.is_success:
            logger.error(f"ImgBB API response error: {response.status_code} {response.text}")
            raise UpstreamError(SERVICE_NAME, response.status_code, response.text, prefix=ERROR_PREFIX)

        return HostedImage(url=decode_upload_response(response))


def decode_upload_response(response: httpx.Response) -> str:
    """Extract ``data.url`` from a successful upload response.

    Raises:
        ContractViolation: Body is not JSON or has no ``data.url``.
    """
    try:
        decoded = _UploadResponse.model_validate_json(response.content)
    except ValidationError as e:
        logger.error(f"Unexpected ImgBB response structure: {response.text[:500]}")
        raise ContractViolation("Unexpected ImgBB response structure: missing data.url") from e
    return decoded.data.url
