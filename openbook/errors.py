"""
Error taxonomy.

Only NotFoundError is distinguished to callers; every other failure of an
upstream collaborator is surfaced as UpstreamError and is fatal for the
current request.
"""


class OpenBookError(Exception):
    """Base class for all errors raised by the package."""


class NotFoundError(OpenBookError):
    """A requested entity is absent from the store."""


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class UpstreamError(OpenBookError):
    """A profile source, language model or object store call failed."""


class UnclassifiableResponse(OpenBookError):
    """The classifier reply matched neither GENERAL nor DETAILED:<name>."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Unclassifiable intent response: {raw!r}")
        self.raw = raw
