"""
craftlink.errors — Error Taxonomy
==================================

Every failure a service can report maps to exactly one of these classes,
and every class carries the HTTP status the API layer answers with.
Storage and Discord failures surface as :class:`UpstreamError` whose
``message`` is safe to show; the underlying exception is chained and
logged server-side only.
"""

from __future__ import annotations


class CraftLinkError(Exception):
    """Base class for all expected service-level failures."""

    status_code: int = 500
    code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ValidationError(CraftLinkError):
    """Missing or malformed input."""

    status_code = 400
    code = "validation_error"


class NotFoundError(CraftLinkError):
    """No record matches the request."""

    status_code = 404
    code = "not_found"


class StateConflictError(CraftLinkError):
    """The operation is not valid for the record's current lifecycle phase."""

    status_code = 400
    code = "state_conflict"


class DuplicateError(CraftLinkError):
    """A uniqueness constraint would be violated."""

    status_code = 409
    code = "duplicate"


class UpstreamError(CraftLinkError):
    """Storage or chat-platform failure."""

    status_code = 500
    code = "upstream_error"


class CodeSaturationError(UpstreamError):
    """No unused auth code could be generated within the attempt budget."""

    code = "code_saturation"
