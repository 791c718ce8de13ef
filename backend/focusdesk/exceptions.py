"""Domain exceptions raised by the focusdesk services.

API handlers in ``focusdesk.main`` translate these into HTTP responses;
services never raise ``HTTPException`` themselves.
"""


class FocusdeskError(Exception):
    """Base class for every domain error."""


class NotFoundError(FocusdeskError):
    def __init__(self, entity: str, key: object) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key} not found")


class PermissionDeniedError(FocusdeskError):
    def __init__(self, action: str, role: str) -> None:
        self.action = action
        self.role = role
        super().__init__(f"Role '{role}' may not {action}")


class FieldValidationError(FocusdeskError):
    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class InvalidRoleError(FieldValidationError):
    def __init__(self, role: object, field: str = "role") -> None:
        self.role = role
        super().__init__(field, f"unknown role {role!r}")


class CorruptLayoutError(FocusdeskError):
    """A stored layout document failed structural validation."""

    def __init__(self, target: str) -> None:
        self.target = target
        super().__init__(f"Layout for {target} is corrupt")


class LayoutVersionMismatchError(FocusdeskError):
    def __init__(self, target: str, found: object, expected: int) -> None:
        self.target = target
        self.found = found
        self.expected = expected
        super().__init__(f"Layout for {target} has version {found!r}, expected {expected}")


class MappingConflictError(FocusdeskError):
    """Concurrent first contact claimed the identity first. Internal only; always retried."""


class StorageUnavailableError(FocusdeskError):
    def __init__(self, message: str = "Storage backend is unavailable") -> None:
        super().__init__(message)


class UnverifiedEmailError(PermissionDeniedError):
    """A new external identity asked to take over an account by an email its provider has not verified."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("link an existing account through an unverified email", "user")
