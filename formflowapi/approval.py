"""Approval resolution engine.

A submission against a form that requires approval fans out one pending
ledger row per manager. Each manager decides only their own row, and after
every decision the submission status is recomputed from the whole ledger:

* any rejected row rejects the submission, whatever the other rows say;
* the submission is approved only once every row is approved;
* otherwise it stays pending.

Fan-out and decide-then-recompute each run in a single transaction, and the
submission row is read ``FOR UPDATE`` before the ledger is re-read so that
concurrent decisions on one submission are serialized.
"""

import logging
from typing import Iterable, List, Optional

import sqlalchemy
from formflowapi.database import (
    database,
    approval_table,
    form_table,
    submission_table,
    store_transaction,
    utcnow,
)
from formflowapi.errors import (
    ConflictError,
    NotFoundError,
    NotFoundOrUnauthorizedError,
    UnpublishedFormError,
    ValidationError,
)
from formflowapi.models.approval import (
    Approval,
    ApprovalStatus,
    ApprovalWithSubmission,
    DecisionOut,
    SubmissionDetail,
)
from formflowapi.models.form import Form
from formflowapi.models.submission import Submission, SubmissionIn, SubmissionStatus
from formflowapi.models.user import Identity
from formflowapi.registry import clean_managers, form_from_row, list_manager_forms, value_fields
from formflowapi.security import normalize_email
from formflowapi.submissions import (
    approval_from_row,
    get_submission,
    get_submissions_by_id,
    list_submissions,
)

logger = logging.getLogger(__name__)

TERMINAL_SUBMISSION_STATUSES = {SubmissionStatus.APPROVED, SubmissionStatus.REJECTED}


def aggregate_status(statuses: Iterable[str]) -> Optional[SubmissionStatus]:
    """Derive the submission status from its ledger.

    Returns None for an empty ledger, which leaves the submission as it is.
    """
    statuses = [ApprovalStatus(s) for s in statuses]
    if not statuses:
        return None
    if ApprovalStatus.REJECTED in statuses:
        return SubmissionStatus.REJECTED
    if all(s == ApprovalStatus.APPROVED for s in statuses):
        return SubmissionStatus.APPROVED
    return SubmissionStatus.PENDING


def snapshot_fields(form: Form) -> List[dict]:
    return [{"id": f.id, "label": f.label, "type": f.type} for f in value_fields(form.fields)]


def check_submission_data(form: Form, data: dict):
    fields = value_fields(form.fields)
    known = {f.id for f in fields}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}")

    missing = []
    for f in fields:
        if not f.required:
            continue
        value = data.get(f.id)
        if value is None or (isinstance(value, (str, list, dict)) and not value) \
                or (isinstance(value, str) and not value.strip()):
            missing.append(f.label or f.id)
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


async def fan_out(submission_id: int, managers: List[str], created_at) -> int:
    """Insert one pending ledger row per manager. Runs in the caller's transaction."""
    for manager in managers:
        query = approval_table.insert().values(
            submission_id=submission_id,
            manager_email=manager,
            status=ApprovalStatus.PENDING.value,
            created_at=created_at,
        )
        await database.execute(query)
    return len(managers)


async def create_submission(
    submission: SubmissionIn,
    identity: Optional[Identity] = None,
    client_ip: Optional[str] = None,
) -> SubmissionDetail:
    if submission.form_id is None or submission.submission_data is None:
        raise ValidationError("Form ID and submission data are required")

    q = form_table.select().where(form_table.c.id == submission.form_id)
    row = await database.fetch_one(q)
    if not row:
        raise NotFoundError("Form not found")
    form = form_from_row(row)
    if not form.is_published:
        raise UnpublishedFormError()

    check_submission_data(form, submission.submission_data)

    if identity is not None:
        submitter_email = identity.email
        submitter_name = identity.name
    else:
        submitter_email = normalize_email(submission.submitter_email) or "anonymous"
        submitter_name = submitter_email

    # Membership is fixed here; later edits to the form's managers do not touch the ledger
    managers = clean_managers(form.managers)
    if form.requires_approval and not managers:
        logger.warning(
            f"Form {form.id} requires approval but has no managers, bypassing approval",
            extra={"email": submitter_email},
        )
    needs_approval = form.requires_approval and bool(managers)
    status = SubmissionStatus.PENDING if needs_approval else SubmissionStatus.SUBMITTED

    now = utcnow()
    query = submission_table.insert().values(
        form_id=form.id,
        data=submission.submission_data,
        field_snapshot=snapshot_fields(form),
        submitter_email=submitter_email,
        submitter_name=submitter_name,
        ip_address=submission.submission_ip or client_ip,
        status=status.value,
        submitted_at=now,
        updated_at=now,
    )
    async with store_transaction("create_submission", email=submitter_email, form_id=form.id):
        submission_id = await database.execute(query)
        if needs_approval:
            created = await fan_out(submission_id, managers, now)
            logger.info(f"Created {created} approval record(s) for submission {submission_id}")

    logger.info(
        f"Submission {submission_id} created for form {form.id} with status {status.value}",
        extra={"email": submitter_email},
    )
    return await get_submission(submission_id)


async def find_approval_for_manager(
    approval_id: int, manager_email: str, for_update: bool = False
) -> Optional[Approval]:
    """Look up an approval row owned by ``manager_email``.

    Existence and ownership are checked by one predicate, so a row that
    belongs to someone else is indistinguishable from a missing one.
    """
    query = approval_table.select().where(
        (approval_table.c.id == approval_id) &
        (approval_table.c.manager_email == manager_email)
    )
    if for_update:
        query = query.with_for_update()
    row = await database.fetch_one(query)
    return approval_from_row(row) if row else None


async def recompute_submission_status(submission_id: int) -> SubmissionStatus:
    """Re-read the ledger and write the aggregate if it is terminal.

    Must run inside the caller's transaction.
    """
    lock_query = (
        sqlalchemy.select(submission_table.c.id, submission_table.c.status)
        .where(submission_table.c.id == submission_id)
        .with_for_update()
    )
    submission_row = await database.fetch_one(lock_query)
    if not submission_row:
        raise NotFoundError("Submission not found")
    current = SubmissionStatus(submission_row.status)

    ledger_query = sqlalchemy.select(approval_table.c.status).where(
        approval_table.c.submission_id == submission_id
    )
    statuses = [r.status for r in await database.fetch_all(ledger_query)]
    aggregate = aggregate_status(statuses)

    if aggregate in TERMINAL_SUBMISSION_STATUSES and aggregate != current:
        update_query = (
            submission_table.update()
            .where(submission_table.c.id == submission_id)
            .values(status=aggregate.value, updated_at=utcnow())
        )
        await database.execute(update_query)
        logger.info(f"Submission {submission_id} is now {aggregate.value}")
        return aggregate
    return current


async def decide(
    approval_id: int,
    identity: Identity,
    decision: ApprovalStatus,
    comments: Optional[str] = None,
) -> DecisionOut:
    if decision not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
        raise ValidationError("Decision must be 'approved' or 'rejected'")
    comments = (comments or "").strip()
    if decision == ApprovalStatus.REJECTED and not comments:
        raise ValidationError("Comments are required for rejection")

    async with store_transaction("decide_approval", email=identity.email, approval_id=approval_id):
        approval = await find_approval_for_manager(approval_id, identity.email, for_update=True)
        if approval is None:
            logger.warning(
                f"Approval {approval_id} not found or not owned by caller",
                extra={"email": identity.email},
            )
            raise NotFoundOrUnauthorizedError()
        if approval.status != ApprovalStatus.PENDING:
            raise ConflictError(f"Approval has already been {approval.status.value}")

        decided_at = utcnow()
        update_query = (
            approval_table.update()
            .where(
                (approval_table.c.id == approval_id) &
                (approval_table.c.manager_email == identity.email) &
                (approval_table.c.status == ApprovalStatus.PENDING.value)
            )
            .values(
                status=decision.value,
                comments=comments,
                approved_at=decided_at,
                approved_by=identity.name,
            )
        )
        await database.execute(update_query)

        # the update matches only a pending row
        updated = await find_approval_for_manager(approval_id, identity.email)
        if updated is None or updated.status != decision or updated.approved_at != decided_at:
            logger.warning(
                f"Approval {approval_id} was decided concurrently",
                extra={"email": identity.email},
            )
            raise ConflictError()

        submission_status = await recompute_submission_status(approval.submission_id)

    logger.info(
        f"Approval {approval_id} {decision.value}; submission {approval.submission_id} is {submission_status.value}",
        extra={"email": identity.email},
    )
    return DecisionOut(
        **updated.model_dump(),
        submission_status=submission_status.value,
        submission_fully_approved=submission_status == SubmissionStatus.APPROVED,
    )


async def attach_submissions(rows) -> List[ApprovalWithSubmission]:
    approvals = [approval_from_row(row) for row in rows]
    submissions = await get_submissions_by_id(list({a.submission_id for a in approvals}))
    return [
        ApprovalWithSubmission(**a.model_dump(), submission=submissions[a.submission_id])
        for a in approvals
        if a.submission_id in submissions
    ]


async def list_manager_approvals(
    manager_email: str, status: Optional[str] = None
) -> List[ApprovalWithSubmission]:
    query = approval_table.select().where(approval_table.c.manager_email == manager_email)
    if status:
        query = query.where(approval_table.c.status == status)
    query = query.order_by(approval_table.c.created_at.desc(), approval_table.c.id.desc())
    rows = await database.fetch_all(query)
    return await attach_submissions(rows)


async def list_pending_approvals(manager_email: str) -> List[ApprovalWithSubmission]:
    return await list_manager_approvals(manager_email, ApprovalStatus.PENDING.value)


async def get_approval(approval_id: int, manager_email: str) -> ApprovalWithSubmission:
    approval = await find_approval_for_manager(approval_id, manager_email)
    if approval is None:
        raise NotFoundOrUnauthorizedError()
    submissions = await get_submissions_by_id([approval.submission_id])
    return ApprovalWithSubmission(
        **approval.model_dump(), submission=submissions[approval.submission_id]
    )


async def list_submissions_awaiting(manager_email: str) -> List[Submission]:
    """Pending submissions across every form ``manager_email`` manages."""
    forms = await list_manager_forms(manager_email)
    submissions = []
    for form in forms:
        submissions.extend(
            await list_submissions(status=SubmissionStatus.PENDING.value, form_id=form.id)
        )
    submissions.sort(key=lambda s: (s.submitted_at, s.id), reverse=True)
    return submissions
