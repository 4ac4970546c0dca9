import logging
import re
from typing import Annotated

from fastapi import APIRouter, Depends
from formflowapi.models.user import EmailCheckIn, Identity
from formflowapi.security import get_current_identity, normalize_email

logger = logging.getLogger(__name__)
router = APIRouter()

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@router.get("/me", response_model=Identity, status_code=200)
async def me(current_user: Annotated[Identity, Depends(get_current_identity)]):
    return current_user


@router.post("/validate-email", status_code=200)
async def validate_email(body: EmailCheckIn, current_user: Annotated[Identity, Depends(get_current_identity)]):
    """Check an address before it is added to a form's managers."""
    email = normalize_email(body.email)
    if not email or not EMAIL_RE.match(email):
        return {"valid": False, "message": "Please enter a valid email address"}

    logger.debug("Validated manager email", extra={"email": email})
    local_part, domain = email.split("@", 1)
    return {
        "valid": True,
        "message": "Valid email address",
        "user": {"email": email, "display_name": local_part, "domain": domain},
    }
