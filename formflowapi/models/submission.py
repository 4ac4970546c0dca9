from datetime import datetime
from enum import Enum
from pydantic import BaseModel
from typing import Dict, List, Optional, Any

from formflowapi.models.form import FormSummary


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class FieldSnapshot(BaseModel):
    id: str
    label: Optional[str] = None
    type: str


class SubmissionIn(BaseModel):
    form_id: Optional[int] = None
    submission_data: Optional[Dict[str, Any]] = None
    submitter_email: Optional[str] = None
    submission_ip: Optional[str] = None


class Submission(BaseModel):
    id: int
    form_id: int
    data: Dict[str, Any]
    field_snapshot: List[FieldSnapshot] = []
    submitter_email: str
    submitter_name: Optional[str] = None
    ip_address: Optional[str] = None
    status: SubmissionStatus
    submitted_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    form: Optional[FormSummary] = None
