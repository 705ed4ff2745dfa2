"""Exception hierarchy for the conversation server."""


class PaloozaError(Exception):
    """Base class for all server errors."""


class ConfigurationError(PaloozaError):
    """Required configuration (credential, catalog file) is missing or invalid.

    Raised at startup. Not recoverable within a running process.
    """


class RequestValidationError(PaloozaError):
    """A client command failed validation.

    The message is client facing and is sent verbatim in the error frame.
    ``terminal`` marks failures that end the connection (any invalid start).
    """

    def __init__(self, message: str, terminal: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.terminal = terminal


class AuthenticationError(PaloozaError):
    """Bearer token missing or rejected by the verifier."""


class BackendConnectionError(PaloozaError):
    """The realtime dialog backend connection could not be opened or broke."""
