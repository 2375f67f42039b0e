"""Custom exceptions for authentication and authorization."""


class AuthenticationError(Exception):
    """Raised when authentication fails (invalid credentials, expired tokens, etc.)."""

    pass


class NoCredentialError(AuthenticationError):
    """Raised when a request carries no well-formed bearer credential."""

    pass


class InvalidCredentialError(AuthenticationError):
    """
    Raised when a bearer token fails verification.

    The message is the same for every cause (bad signature, wrong issuer or
    audience, expired, malformed); the cause is only logged.
    """

    def __init__(self) -> None:
        super().__init__("Invalid authentication credentials")
