"""Error taxonomy for the generate -> upload -> persist chain.

Four kinds of failure can stop a request:

ConfigurationError
    A required secret or connection string is missing.  Detected before any
    outbound call is made.
UpstreamError
    The generation or hosting API answered with a non-success status, timed
    out, or could not be reached.  Carries the status code and body text.
ContractViolation
    An upstream answered successfully but its payload does not have the
    expected shape.
PersistenceError
    The record store could not be reached or rejected the insert.
"""

from __future__ import annotations


class FluxdropError(Exception):
    """Base class for every error raised by the request pipeline."""


class ConfigurationError(FluxdropError):
    """A required setting is absent.

    Attributes:
        setting: Name of the missing :class:`FluxdropConfig` field.
    """

    def __init__(self, setting: str, message: str) -> None:
        super().__init__(message)
        self.setting = setting


class UpstreamError(FluxdropError):
    """A third-party API call did not succeed.

    Attributes:
        service: Short name of the upstream (``"generation"`` or ``"hosting"``).
        status_code: HTTP status returned by the upstream.  Timeouts use 504
            and unreachable hosts 502.
        body: Response body text, or a description of the transport failure.
    """

    def __init__(self, service: str, status_code: int, body: str, prefix: str = "API error") -> None:
        super().__init__(f"{prefix}: {status_code} {body}")
        self.service = service
        self.status_code = status_code
        self.body = body


class ContractViolation(FluxdropError):
    """An upstream payload did not match the expected schema."""


class PersistenceError(FluxdropError):
    """The generation record could not be written or read."""
