import logging
from typing import Any, Dict, List, Annotated, Optional

from fastapi import APIRouter, Depends, Request
from formflowapi import submissions as store
from formflowapi.approval import create_submission
from formflowapi.models.approval import SubmissionDetail
from formflowapi.models.submission import Submission, SubmissionIn
from formflowapi.models.user import Identity
from formflowapi.security import get_current_identity, get_optional_identity

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[Submission], status_code=200)
async def list_submissions(
    current_user: Annotated[Identity, Depends(get_current_identity)],
    status: Optional[str] = None,
    submitter_email: Optional[str] = None,
    form_id: Optional[int] = None,
):
    return await store.list_submissions(status=status, submitter_email=submitter_email, form_id=form_id)


@router.get("/form/{fid}", response_model=List[Submission], status_code=200)
async def list_form_submissions(
    fid: int,
    current_user: Annotated[Identity, Depends(get_current_identity)],
    status: Optional[str] = None,
    submitter_email: Optional[str] = None,
):
    return await store.list_submissions(status=status, submitter_email=submitter_email, form_id=fid)


@router.get("/{sid}", response_model=SubmissionDetail, status_code=200)
async def get_submission(sid: int, current_user: Annotated[Identity, Depends(get_current_identity)]):
    return await store.get_submission(sid)


@router.post("", response_model=SubmissionDetail, status_code=201)
async def submit(
    submission: SubmissionIn,
    request: Request,
    current_user: Annotated[Optional[Identity], Depends(get_optional_identity)],
):
    client_ip = request.client.host if request.client else None
    return await create_submission(submission, identity=current_user, client_ip=client_ip)


@router.put("/{sid}", response_model=SubmissionDetail, status_code=200)
async def update_submission(
    sid: int,
    changes: Dict[str, Any],
    current_user: Annotated[Identity, Depends(get_current_identity)],
):
    logger.debug(f"Updating submission {sid}", extra={"email": current_user.email})
    return await store.update_submission(sid, changes)


@router.delete("/{sid}", status_code=200)
async def delete_submission(sid: int, current_user: Annotated[Identity, Depends(get_current_identity)]):
    await store.delete_submission(sid)
    return {"message": "Submission deleted successfully", "submission_id": sid}
