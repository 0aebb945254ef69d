"""Exception hierarchy for the query planner.

Only ExtractionError is fatal. EndpointSelectionError and ExternalAPIError are
caught inside the pipeline and turned into relaxation steps or empty results.
"""


class MarqueeError(Exception):
    """Base class for all marquee errors."""


class ExtractionError(MarqueeError):
    """An extracted entity envelope is malformed (missing type/value, unknown type)."""

    def __init__(self, message: str, entity: dict | None = None):
        super().__init__(message)
        self.entity = entity


class EndpointSelectionError(MarqueeError):
    """No endpoint candidate clears the minimum coverage threshold.

    `unresolved` lists the primary constraints that never mapped to an id,
    when those are the reason.
    """

    def __init__(self, message: str, best_coverage: float = 0.0, unresolved: list | None = None):
        super().__init__(message)
        self.best_coverage = best_coverage
        self.unresolved = list(unresolved or [])


class ExternalAPIError(MarqueeError):
    """The search/discovery API failed.

    Attributes:
        status_code: HTTP status, or None for transport errors/timeouts
        retryable: True for timeouts, connection errors, 429 and 5xx
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
        path: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.path = path

    @classmethod
    def from_status(cls, status_code: int, path: str, detail: str = "") -> "ExternalAPIError":
        retryable = status_code == 429 or status_code >= 500
        msg = f"HTTP {status_code} from {path}"
        if detail:
            msg = f"{msg}: {detail[:200]}"
        return cls(msg, status_code=status_code, retryable=retryable, path=path)
