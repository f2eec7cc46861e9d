"""Per-request caller context passed explicitly into service operations."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller of one operation."""

    user_id: str
    request_id: str | None = None
