import logging
from typing import List, Annotated, Optional

from fastapi import APIRouter, Depends
from formflowapi import approval as engine
from formflowapi.models.approval import ApprovalStatus, ApprovalWithSubmission, DecisionIn, DecisionOut
from formflowapi.models.user import Identity
from formflowapi.security import get_current_identity

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[ApprovalWithSubmission], status_code=200)
async def list_my_approvals(
    current_user: Annotated[Identity, Depends(get_current_identity)],
    status: Optional[ApprovalStatus] = None,
):
    return await engine.list_manager_approvals(current_user.email, status.value if status else None)


@router.get("/pending", response_model=List[ApprovalWithSubmission], status_code=200)
async def list_pending(current_user: Annotated[Identity, Depends(get_current_identity)]):
    approvals = await engine.list_pending_approvals(current_user.email)
    logger.debug(f"Found {len(approvals)} pending approvals", extra={"email": current_user.email})
    return approvals


@router.get("/{aid}", response_model=ApprovalWithSubmission, status_code=200)
async def get_approval(aid: int, current_user: Annotated[Identity, Depends(get_current_identity)]):
    return await engine.get_approval(aid, current_user.email)


@router.post("/{aid}/approve", response_model=DecisionOut, status_code=200)
async def approve(
    aid: int,
    current_user: Annotated[Identity, Depends(get_current_identity)],
    body: Optional[DecisionIn] = None,
):
    comments = body.comments if body else ""
    return await engine.decide(aid, current_user, ApprovalStatus.APPROVED, comments)


@router.post("/{aid}/reject", response_model=DecisionOut, status_code=200)
async def reject(
    aid: int,
    current_user: Annotated[Identity, Depends(get_current_identity)],
    body: Optional[DecisionIn] = None,
):
    comments = body.comments if body else ""
    return await engine.decide(aid, current_user, ApprovalStatus.REJECTED, comments)
