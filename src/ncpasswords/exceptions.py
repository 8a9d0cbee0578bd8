class PasswordsError(Exception):
    """Base class for every error raised by ncpasswords."""


class SchemaError(PasswordsError):
    """Raised when an entity schema declaration is invalid.

    This happens at import time, while bindings are being generated, and is
    never part of a normal request path.
    """


class TransportError(PasswordsError):
    """Raised when the HTTP exchange itself fails (network, TLS, timeout, HTTP status)."""


class AuthenticationError(TransportError):
    """Raised when the server rejects the credentials or the session token."""


class ConnectionFailedError(PasswordsError):
    """Raised when a session could not be opened."""


class KeepaliveError(PasswordsError):
    """Raised when the server refuses to keep the current session alive."""


class DisconnectError(PasswordsError):
    """Raised when the server did not acknowledge closing the session."""


class DecodeError(PasswordsError):
    """Raised when a response does not have the expected shape."""


class EndpointError(PasswordsError):
    """Raised when the API answers with its ``{status, id, message}`` error shape."""

    status: str
    error_id: int | None
    message: str

    def __init__(
        self,
        message: str,
        *,
        error_id: int | None = None,
        status: str = "error",
    ) -> None:
        super().__init__(
            f"{message} (id {error_id})" if error_id is not None else message
        )
        self.status = status
        self.error_id = error_id
        self.message = message
