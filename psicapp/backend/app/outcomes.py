from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

UNAUTHENTICATED = "unauthenticated"
UNAUTHORIZED = "unauthorized"
NOT_FOUND = "not_found"
INVALID_ARGUMENT = "invalid_argument"
STORE_ERROR = "store_error"
LOOKUP_DEGRADED = "lookup_degraded"
NOTIFICATION_FAILURE = "notification_failure"

HTTP_STATUS_BY_ERROR = {
    UNAUTHENTICATED: 401,
    UNAUTHORIZED: 403,
    NOT_FOUND: 404,
    INVALID_ARGUMENT: 400,
    STORE_ERROR: 500,
}


@dataclass
class Outcome:
    """Tagged result returned by the risk pipeline instead of raising.

    ``warnings`` carries non-fatal degradations (for example
    ``lookup_degraded``) on an otherwise successful outcome.
    """

    success: bool
    data: Any = None
    error: Optional[str] = None
    detail: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def http_status(self) -> int:
        if self.success:
            return 200
        return HTTP_STATUS_BY_ERROR.get(self.error, 500)


def ok(data: Any = None, warnings: Optional[List[str]] = None) -> Outcome:
    return Outcome(success=True, data=data, warnings=list(warnings or []))


def fail(error: str, detail: Optional[str] = None) -> Outcome:
    return Outcome(success=False, error=error, detail=detail)
