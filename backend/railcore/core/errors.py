"""
Error taxonomy for the aggregate stores.

Every store operation reports failures through one of these types; none of
them is retried internally. ``status_code`` is the HTTP-equivalent outcome the
request layer maps the error to.
"""
from typing import Any, Dict, List, Optional


class RailCoreError(Exception):
    """Base class for all store errors"""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RailCoreError):
    """A required/positivity invariant was violated; nothing was written."""

    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, value: Any, reason: str) -> "ValidationError":
        return cls(
            f"Validation failed for field '{field}' with value '{value}': {reason}",
            errors=[{"loc": [field], "msg": reason}],
        )

    @classmethod
    def from_pydantic(cls, entity_type: str, exc) -> "ValidationError":
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        fields = ", ".join(".".join(str(p) for p in e["loc"]) or "<root>" for e in errors)
        return cls(f"Invalid {entity_type}: {fields}", errors=errors)


class NotFoundError(RailCoreError):
    status_code = 404

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(f"{entity_type} not found with id: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConcurrencyConflict(RailCoreError):
    """The submitted version no longer matches the stored one; reload and reapply."""

    status_code = 409

    def __init__(self, entity_type: str, entity_id: str, expected_version: Optional[int]):
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently "
            f"(submitted version {expected_version} is stale)"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version


class IntegrityError(RailCoreError):
    """Uniqueness or ownership constraint violated by the backing store."""

    status_code = 409
