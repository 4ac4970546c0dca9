"""Submission store: listing, lookup, free-form edits and cascade deletes.

Status is never written here. It only changes through the approval engine.
"""

import logging
from typing import Any, Dict, List, Optional

import sqlalchemy
from formflowapi.database import (
    database,
    approval_table,
    form_table,
    submission_table,
    store_transaction,
    utcnow,
)
from formflowapi.errors import NotFoundError, ValidationError
from formflowapi.models.approval import Approval, SubmissionDetail
from formflowapi.models.form import FormSummary
from formflowapi.models.submission import Submission
from formflowapi.security import normalize_email

logger = logging.getLogger(__name__)

EDITABLE_SUBMISSION_FIELDS = {"data", "submitter_name"}


def submission_query():
    return sqlalchemy.select(
        submission_table,
        form_table.c.title.label("form_title"),
        form_table.c.form_type.label("form_type"),
    ).select_from(
        submission_table.join(form_table, submission_table.c.form_id == form_table.c.id)
    )


def submission_from_row(row) -> Submission:
    return Submission(
        id=row.id,
        form_id=row.form_id,
        data=row.data or {},
        field_snapshot=row.field_snapshot or [],
        submitter_email=row.submitter_email,
        submitter_name=row.submitter_name,
        ip_address=row.ip_address,
        status=row.status,
        submitted_at=row.submitted_at,
        updated_at=row.updated_at,
        form=FormSummary(id=row.form_id, title=row.form_title, form_type=row.form_type),
    )


def approval_from_row(row) -> Approval:
    return Approval(
        id=row.id,
        submission_id=row.submission_id,
        manager_email=row.manager_email,
        status=row.status,
        comments=row.comments,
        approved_at=row.approved_at,
        approved_by=row.approved_by,
        created_at=row.created_at,
    )


async def list_submissions(
    status: Optional[str] = None,
    submitter_email: Optional[str] = None,
    form_id: Optional[int] = None,
) -> List[Submission]:
    query = submission_query()
    if status:
        query = query.where(submission_table.c.status == status)
    if submitter_email:
        query = query.where(submission_table.c.submitter_email == normalize_email(submitter_email))
    if form_id is not None:
        query = query.where(submission_table.c.form_id == form_id)
    query = query.order_by(submission_table.c.submitted_at.desc(), submission_table.c.id.desc())
    rows = await database.fetch_all(query)
    return [submission_from_row(row) for row in rows]


async def get_submissions_by_id(submission_ids: List[int]) -> Dict[int, Submission]:
    if not submission_ids:
        return {}
    query = submission_query().where(submission_table.c.id.in_(submission_ids))
    rows = await database.fetch_all(query)
    return {row.id: submission_from_row(row) for row in rows}


async def get_submission(submission_id: int) -> SubmissionDetail:
    query = submission_query().where(submission_table.c.id == submission_id)
    row = await database.fetch_one(query)
    if not row:
        raise NotFoundError("Submission not found")

    approvals_query = (
        approval_table.select()
        .where(approval_table.c.submission_id == submission_id)
        .order_by(approval_table.c.id)
    )
    approvals = await database.fetch_all(approvals_query)
    return SubmissionDetail(
        **submission_from_row(row).model_dump(),
        approvals=[approval_from_row(a) for a in approvals],
    )


async def update_submission(submission_id: int, changes: Dict[str, Any]) -> SubmissionDetail:
    rejected = sorted(set(changes) - EDITABLE_SUBMISSION_FIELDS)
    if rejected:
        raise ValidationError(f"Cannot update field(s): {', '.join(rejected)}")
    if "data" in changes and not isinstance(changes["data"], dict):
        raise ValidationError("Submission data must be an object")

    await get_submission(submission_id)
    if not changes:
        return await get_submission(submission_id)

    query = (
        submission_table.update()
        .where(submission_table.c.id == submission_id)
        .values(**changes, updated_at=utcnow())
    )
    async with store_transaction("update_submission", submission_id=submission_id):
        await database.execute(query)
    return await get_submission(submission_id)


async def delete_submission(submission_id: int):
    await get_submission(submission_id)
    async with store_transaction("delete_submission", submission_id=submission_id):
        await database.execute(
            approval_table.delete().where(approval_table.c.submission_id == submission_id)
        )
        await database.execute(
            submission_table.delete().where(submission_table.c.id == submission_id)
        )
    logger.info(f"Submission {submission_id} deleted")


async def delete_submissions_for_form(form_id: int) -> int:
    """Delete every submission of a form, ledger rows first.

    Must run inside the caller's transaction. Returns the number of
    submissions deleted.
    """
    ids_query = sqlalchemy.select(submission_table.c.id).where(submission_table.c.form_id == form_id)
    submission_ids = [row.id for row in await database.fetch_all(ids_query)]
    if submission_ids:
        await database.execute(
            approval_table.delete().where(approval_table.c.submission_id.in_(submission_ids))
        )
        await database.execute(
            submission_table.delete().where(submission_table.c.form_id == form_id)
        )
    return len(submission_ids)
