"""Exception types raised by the assistant core."""


class SiteGuideError(Exception):
    """Base class for assistant errors."""


class QueryValidationError(SiteGuideError, ValueError):
    """The inbound question is missing or malformed."""


class UpstreamUnavailableError(SiteGuideError, RuntimeError):
    """An embedding or vector-search call failed, so no grounding is possible."""

    def __init__(self, dependency: str, message: str | None = None) -> None:
        """Record which dependency failed.

        Args:
            dependency: Short name of the failing dependency
                (``"embedding"`` or ``"vector_search"``).
            message: Optional client-facing message.
        """
        self.dependency = dependency
        self.message = message or f"{dependency} unavailable"
        super().__init__(self.message)
