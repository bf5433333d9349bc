"""Request-scoped entities passed between the pipeline stages.

None of these are stored in-process; each lives for a single request.
The slider bounds used by the browser form are also defined here so the
API can serve them from ``GET /api/config``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class GenerationRequest:
    """Parameters collected by the form and forwarded to the generation API.

    Fields are optional and untyped because the endpoint enforces neither
    presence nor type; an absent field is left out of the outbound payload,
    any other value is forwarded as received, and the upstream decides what
    to do about it.
    """

    prompt: Any = None
    width: Any = None
    height: Any = None
    steps: Any = None
    n: Any = None

    def to_payload(self) -> dict:
        """Return the set fields as a dict, dropping the ones left as None."""
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True)
class GenerationResult:
    """Base64-encoded image returned by the generation API."""

    image_data: str


@dataclass(frozen=True)
class HostedImage:
    """Public URL of an image after upload to the hosting service."""

    url: str


@dataclass(frozen=True)
class SliderBounds:
    """Range, step and starting value of one form slider."""

    min: int
    max: int
    step: int
    default: int


# Form slider bounds.  The count slider is pinned to 1: only the first
# generated image is ever used.
WIDTH_BOUNDS = SliderBounds(min=256, max=1792, step=8, default=512)
HEIGHT_BOUNDS = SliderBounds(min=256, max=1792, step=8, default=512)
STEPS_BOUNDS = SliderBounds(min=1, max=4, step=1, default=4)
COUNT_BOUNDS = SliderBounds(min=1, max=1, step=1, default=1)

FORM_BOUNDS = {
    "width": WIDTH_BOUNDS,
    "height": HEIGHT_BOUNDS,
    "steps": STEPS_BOUNDS,
    "n": COUNT_BOUNDS,
}
