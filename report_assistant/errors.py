"""
Typed failures raised by the Report Assistant.

Everything derives from ReportAssistantError so callers (server, CLI) can
map failures to a user-facing message in one place.
"""

from typing import Optional


class ReportAssistantError(Exception):
    """Base class for all Report Assistant failures."""


class AuthenticationRequired(ReportAssistantError):
    """No session, an expired session, or the backend answered 401."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class InvalidState(ReportAssistantError):
    """OAuth callback did not match the login that was started locally."""


class UpstreamHttpError(ReportAssistantError):
    """Non-2xx answer from the backend or the completion API."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        text = f"HTTP {status_code}"
        if message:
            text = f"{text} - {message}"
        super().__init__(text)


class GraphQLError(UpstreamHttpError):
    """GraphQL answered with an `errors` envelope."""


class NotFound(ReportAssistantError):
    """A template or report lookup yielded nothing."""


class CapabilityUnsupported(ReportAssistantError):
    """The active provider does not implement the requested operation."""

    def __init__(self, provider: str, capability: str):
        self.provider = provider
        self.capability = capability
        super().__init__(f"Provider '{provider}' does not support {capability}")


class MalformedResponse(ReportAssistantError):
    """Upstream payload had an unexpected shape and no safe default exists."""


class PreconditionFailed(ReportAssistantError):
    """A local requirement (API key, source reports, ...) is not met."""


class CompletionCancelled(ReportAssistantError):
    """A completion call was cancelled through its CancellationToken."""

    def __init__(self, partial_text: Optional[str] = None):
        self.partial_text = partial_text or ""
        super().__init__("Completion cancelled")
