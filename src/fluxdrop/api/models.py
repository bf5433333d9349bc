"""Pydantic request and response models for the Fluxdrop API.

Models
------
GenerateImageRequest
    Payload for ``POST /generate-image``.  Every field is optional and
    untyped: missing values are left out of the payload sent to the
    generation API, and present values are forwarded exactly as received.
GenerateImageResponse
    Success body of ``POST /generate-image``.
ErrorResponse
    Body of every failure response.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fluxdrop.core.models import GenerationRequest


class GenerateImageRequest(BaseModel):
    """Request body for the ``POST /generate-image`` endpoint.

    Values are not type-checked or coerced here; a width of ``"wide"`` or a
    prompt of ``123`` reaches the generation API unchanged and the upstream
    decides what to do about it.

    Attributes:
        prompt: Text describing the image.
        width: Image width in pixels.
        height: Image height in pixels.
        steps: Number of denoising steps.
        n: Number of images to request.  Only the first is returned.
    """

    model_config = ConfigDict(extra="ignore")

    prompt: Any = Field(default=None, description="Text prompt.")
    width: Any = Field(default=None, description="Image width in pixels.")
    height: Any = Field(default=None, description="Image height in pixels.")
    steps: Any = Field(default=None, description="Number of denoising steps.")
    n: Any = Field(default=None, description="Number of images to request.")

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            width=self.width,
            height=self.height,
            steps=self.steps,
            n=self.n,
        )


class GenerateImageResponse(BaseModel):
    """Success body for ``POST /generate-image``.

    Attributes:
        image: Base64-encoded generated image.
        imgbb_url: Public URL of the hosted copy (serialised as ``imgbbUrl``).
        db_id: Id of the stored record (serialised as ``dbId``); omitted when
            persistence is disabled.
    """

    model_config = ConfigDict(populate_by_name=True)

    image: str
    imgbb_url: str = Field(alias="imgbbUrl")
    db_id: int | None = Field(default=None, alias="dbId")


class ErrorResponse(BaseModel):
    """Body of every failure response."""

    error: str
