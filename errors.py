"""Exception types raised by the Herald pipeline.

Error Strategy:
    - FetchError: an HTTP fetch gave up (fatal status or attempts exhausted).
      Propagates out of the crawl stage and is retried at chain level.
    - NonRetryableError: marker base for invariant violations. Chains re-raise
      these immediately instead of replaying the stage sequence.
    - StructuralMismatchError: a parsed detail page could not be matched back
      to the list item it was fetched for.
    - ConfigError: invalid CLI or environment configuration.
    - DraftRejectedError: the newsletter writer failed its self-checks on
      every regeneration.

Per-article model failures during enrichment are not represented here; they
are caught and logged where they happen.
"""


class HeraldError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(HeraldError):
    """Configuration error."""


class FetchError(HeraldError):
    """HTTP fetch failed after classification or retries."""

    def __init__(
        self,
        message: str,
        url: str,
        status: int | None = None,
        attempt: int = 0,
    ):
        super().__init__(message)
        self.url = url
        self.status = status
        self.attempt = attempt


class NonRetryableError(HeraldError):
    """Errors that must never be retried by a chain."""


class StructuralMismatchError(NonRetryableError):
    """A detail record has no list item with the same correlation id."""

    def __init__(self, message: str, correlation_id: str, target: str | None = None):
        super().__init__(message, {"correlation_id": correlation_id, "target": target})
        self.correlation_id = correlation_id
        self.target = target


class DraftRejectedError(HeraldError):
    """The writer kept producing drafts that failed their own checks."""

    def __init__(self, message: str, attempts: int, checks: dict[str, bool]):
        super().__init__(message, {"attempts": attempts, "checks": checks})
        self.attempts = attempts
        self.checks = checks
