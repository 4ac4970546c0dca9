from datetime import datetime
from enum import Enum
from pydantic import BaseModel
from typing import List, Optional

from formflowapi.models.submission import Submission


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Approval(BaseModel):
    id: int
    submission_id: int
    manager_email: str
    status: ApprovalStatus
    comments: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    created_at: Optional[datetime] = None


class ApprovalWithSubmission(Approval):
    submission: Submission


class SubmissionDetail(Submission):
    approvals: List[Approval] = []


class DecisionIn(BaseModel):
    comments: Optional[str] = ""


class DecisionOut(Approval):
    submission_status: str
    submission_fully_approved: bool
