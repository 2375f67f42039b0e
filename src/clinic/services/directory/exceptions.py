"""Custom exceptions for the user directory."""


class DirectoryError(Exception):
    """Base exception for all user directory errors."""

    pass


class DuplicateIdentityError(DirectoryError):
    """Raised when a record already exists for the external identity."""

    def __init__(self, auth_id: str):
        super().__init__(f"User with auth_id '{auth_id}' already exists")
        self.auth_id = auth_id


class InvalidRoleError(DirectoryError):
    """Raised when a role is not allowed for the requested operation."""

    def __init__(self, role: object):
        super().__init__(f"Invalid role: {role!r}")
        self.role = role


class UserNotFoundError(DirectoryError):
    """Raised when no record exists for the external identity."""

    def __init__(self, auth_id: str):
        super().__init__(f"User with auth_id '{auth_id}' not found")
        self.auth_id = auth_id


class DirectoryUnavailableError(DirectoryError):
    """Raised when the user store fails for a reason other than a duplicate."""

    pass
