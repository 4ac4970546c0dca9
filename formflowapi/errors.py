"""Error taxonomy for the form and approval service.

Each error carries the HTTP status it maps to and a ``detail`` message that is
safe to show to the caller. ``main.py`` renders them with the same
``{"detail": ...}`` body FastAPI uses for ``HTTPException``.
"""

from typing import Dict, Optional


class FormFlowError(Exception):
    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return None


class ValidationError(FormFlowError):
    """Malformed input."""

    status_code = 400
    default_detail = "Invalid request"


class UnpublishedFormError(FormFlowError):
    """Submission attempted against a draft form."""

    status_code = 400
    default_detail = "Form is not published"


class AuthenticationError(FormFlowError):
    """Credential could not be resolved to an identity."""

    status_code = 401
    default_detail = "Could not validate credentials"

    @property
    def headers(self) -> Optional[Dict[str, str]]:
        return {"WWW-Authenticate": "Bearer"}


class ForbiddenError(FormFlowError):
    status_code = 403
    default_detail = "Forbidden"


class NotFoundError(FormFlowError):
    """Missing form, submission or template."""

    status_code = 404
    default_detail = "Not found"


class NotFoundOrUnauthorizedError(FormFlowError):
    """Approval lookup failed.

    The message is the same whether the entry does not exist or belongs to
    another manager, so callers cannot probe for existence.
    """

    status_code = 404
    default_detail = "Approval not found or not authorized"


class ConflictError(FormFlowError):
    """Decision attempted on an approval entry that is already decided."""

    status_code = 409
    default_detail = "Approval has already been decided"


class StoreError(FormFlowError):
    """Underlying data-store failure. The cause is logged, never returned."""

    status_code = 500
    default_detail = "Internal server error"
