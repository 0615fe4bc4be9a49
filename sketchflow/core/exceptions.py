"""
Service-layer exception hierarchy.

Every service raises one of these types; the application-level error
handlers in ``sketchflow.utils.errors`` map them to HTTP responses once,
so blueprints never translate errors themselves.

Each exception carries a stable machine-readable ``code`` (see ``E`` in
``sketchflow.utils.errors``) and optional ``details`` for the response body.

Usage:
    from sketchflow.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="SubRegion", resource_id=7)
    raise ValidationError("notes must be at most 2000 characters", details={"notes": "too long"})
"""


class ServiceError(Exception):
    """Base for all classified service errors."""

    status_code = 400
    default_code = "ERR_VALIDATION_INVALID"

    def __init__(self, message: str, code: str | None = None, details: dict | None = None) -> None:
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    """Raised when input is missing, malformed, or asks for an illegal transition.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
        code:    Override for the default ``ERR_VALIDATION_INVALID``.
    """

    status_code = 400
    default_code = "ERR_VALIDATION_INVALID"

    def __init__(self, message: str, details: dict | None = None, code: str | None = None) -> None:
        super().__init__(message, code=code, details=details)


class ForbiddenError(ServiceError):
    """Raised when the actor is authenticated but not entitled.

    Covers wrong role, wrong ownership, and wrong drafting center.
    Maps to HTTP 403.
    """

    status_code = 403
    default_code = "ERR_FORBIDDEN"


class NotFoundError(ServiceError):
    """Raised when a referenced entity does not exist or is soft-deleted.

    Args:
        resource: Entity name (e.g. "Settlement", "DraftingCenter").
        resource_id: The key that was looked up. Included in the message.
        code: Override for the default ``ERR_NOT_FOUND``.
    """

    status_code = 404
    default_code = "ERR_NOT_FOUND"

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        code: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource}"
            if resource_id is not None:
                message += f" id={resource_id}"
            message += " not found"
        super().__init__(message, code=code, details={"resource": resource})


class HierarchyMismatchError(NotFoundError):
    """Raised when a child's stored parent differs from the declared parent.

    Reported in the not-found class: from the caller's point of view the
    child does not exist under the ancestor it named.

    Args:
        level: The offending child level (e.g. "SubDistrict").
        parent_level: The level whose declared id did not match.
    """

    default_code = "ERR_HIERARCHY_MISMATCH"

    def __init__(self, level: str, parent_level: str) -> None:
        self.level = level
        self.parent_level = parent_level
        super().__init__(
            resource=level,
            message=f"{level} does not belong to the given {parent_level}",
        )
        self.details = {"level": level, "parent_level": parent_level}


class ConflictError(ServiceError):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or scope) that would be duplicated.
        value: The conflicting value.
        code: Override for the default ``ERR_CONFLICT_DUPLICATE``.
        message: Override for the generated message.
        details: Extra payload, e.g. the id of the blocking row.
    """

    status_code = 409
    default_code = "ERR_CONFLICT_DUPLICATE"

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | int | None = None,
        code: str | None = None,
        message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if message is None:
            message = f"{resource} with {field}={value!r} already exists"
        super().__init__(message, code=code, details=details or {"field": field})
