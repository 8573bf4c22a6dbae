"""Error taxonomy shared by services and routers."""

from __future__ import annotations


class NPSError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message


class InvalidRequest(NPSError):
    """Missing or malformed input (bad token, bad slug, bad ttl)."""

    status_code = 400
    public_message = "Invalid response link"


class NotFound(NPSError):
    """Unknown or expired token, unknown survey or business."""

    status_code = 404
    public_message = "Response link not found or expired"


class InternalError(NPSError):
    """Storage failure. Detail is logged, never shown to respondents."""

    status_code = 500
    public_message = "Internal server error"


class RaceLost(NPSError):
    """Another request inserted the response first.

    Only used inside the capture flow; callers treat it exactly like an
    existing response.
    """

    status_code = 409
