from unittest.mock import patch

import pytest

from formflowapi import approval as engine
from formflowapi.database import database, form_table
from formflowapi.models.approval import ApprovalStatus
from tests.conftest import ADMIN, auth

M1 = "m1@x.com"
M2 = "m2@x.com"


@pytest.fixture()
def pending(make_form, submit):
    """A submission on a two-manager form, with each manager's approval id."""
    form = make_form(managers=[M1, M2], requires_approval=True)
    submission = submit(form["id"]).json()
    ids = {a["manager_email"]: a["id"] for a in submission["approvals"]}
    return form, submission, ids


def approve(client, approval_id, email, comments=None):
    body = {"comments": comments} if comments is not None else None
    return client.post(f"/api/approvals/{approval_id}/approve", json=body, headers=auth(email))


def reject(client, approval_id, email, comments="Not enough detail"):
    return client.post(
        f"/api/approvals/{approval_id}/reject", json={"comments": comments}, headers=auth(email)
    )


def submission_status(client, submission_id):
    return client.get(f"/api/submissions/{submission_id}", headers=auth(ADMIN)).json()["status"]


def test_single_approval_stays_pending(client, pending):
    _, submission, ids = pending
    response = approve(client, ids[M1], M1)
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "approved"
    assert body["submission_status"] == "pending"
    assert body["submission_fully_approved"] is False
    assert submission_status(client, submission["id"]) == "pending"


def test_unanimous_approval(client, pending):
    _, submission, ids = pending
    approve(client, ids[M1], M1)
    body = approve(client, ids[M2], M2, comments="ok").json()
    assert body["submission_status"] == "approved"
    assert body["submission_fully_approved"] is True
    assert body["comments"] == "ok"
    assert submission_status(client, submission["id"]) == "approved"


def test_rejection_is_immediate(client, pending):
    _, submission, ids = pending
    body = reject(client, ids[M1], M1).json()
    assert body["status"] == "rejected"
    assert body["submission_status"] == "rejected"
    assert submission_status(client, submission["id"]) == "rejected"


def test_approval_after_rejection_keeps_rejected(client, pending):
    _, submission, ids = pending
    reject(client, ids[M1], M1)
    body = approve(client, ids[M2], M2).json()
    assert body["status"] == "approved"
    assert body["submission_status"] == "rejected"
    assert submission_status(client, submission["id"]) == "rejected"


def test_rejection_after_approval(client, pending):
    _, submission, ids = pending
    approve(client, ids[M1], M1)
    reject(client, ids[M2], M2)
    assert submission_status(client, submission["id"]) == "rejected"


def test_other_managers_entry_is_not_found(client, pending):
    _, submission, ids = pending
    response = approve(client, ids[M1], M2)
    assert response.status_code == 404
    assert response.json() == {"detail": "Approval not found or not authorized"}

    missing = approve(client, 9999, M2)
    assert missing.json() == response.json()

    ledger = client.get(f"/api/submissions/{submission['id']}", headers=auth(ADMIN)).json()["approvals"]
    assert all(a["status"] == "pending" for a in ledger)


def test_stranger_cannot_decide(client, pending):
    _, _, ids = pending
    assert reject(client, ids[M1], "stranger@x.com").status_code == 404


def test_reject_requires_comments(client, pending):
    _, submission, ids = pending
    for comments in ("", "   "):
        response = reject(client, ids[M1], M1, comments=comments)
        assert response.status_code == 400
        assert response.json() == {"detail": "Comments are required for rejection"}
    response = client.post(f"/api/approvals/{ids[M1]}/reject", headers=auth(M1))
    assert response.status_code == 400
    assert submission_status(client, submission["id"]) == "pending"


def test_decided_entry_cannot_be_decided_again(client, pending):
    _, submission, ids = pending
    approve(client, ids[M1], M1)
    response = reject(client, ids[M1], M1)
    assert response.status_code == 409
    assert response.json() == {"detail": "Approval has already been approved"}
    assert submission_status(client, submission["id"]) == "pending"


def test_decision_records_decider(client, pending):
    _, _, ids = pending
    response = client.post(
        f"/api/approvals/{ids[M1]}/approve", headers=auth(M1, "Manager One")
    )
    body = response.json()
    assert body["approved_by"] == "Manager One"
    assert body["approved_at"] is not None


def test_decision_requires_auth(client, pending):
    _, _, ids = pending
    assert client.post(f"/api/approvals/{ids[M1]}/approve").status_code == 401


def test_manager_emails_match_case_insensitively(client, make_form, submit):
    form = make_form(managers=["Boss@Corp.IO"], requires_approval=True)
    submission = submit(form["id"]).json()
    approval_id = submission["approvals"][0]["id"]
    body = approve(client, approval_id, "boss@corp.io").json()
    assert body["submission_status"] == "approved"


def test_pending_approvals(client, pending, make_form, submit):
    _, submission, ids = pending
    other_form = make_form(managers=[M1], requires_approval=True)
    later = submit(other_form["id"]).json()

    response = client.get("/api/approvals/pending", headers=auth(M1))
    rows = response.json()
    assert [a["submission_id"] for a in rows] == [later["id"], submission["id"]]
    assert rows[1]["submission"]["form"]["title"] == "Leave Request"

    approve(client, ids[M1], M1)
    rows = client.get("/api/approvals/pending", headers=auth(M1)).json()
    assert [a["submission_id"] for a in rows] == [later["id"]]
    assert client.get("/api/approvals/pending", headers=auth("nobody@x.com")).json() == []


def test_list_own_approvals_by_status(client, pending):
    _, _, ids = pending
    approve(client, ids[M1], M1)
    rows = client.get("/api/approvals", params={"status": "approved"}, headers=auth(M1)).json()
    assert [a["id"] for a in rows] == [ids[M1]]
    assert client.get("/api/approvals", params={"status": "approved"}, headers=auth(M2)).json() == []
    assert client.get("/api/approvals", params={"status": "bogus"}, headers=auth(M1)).status_code == 422


def test_get_approval(client, pending):
    _, submission, ids = pending
    response = client.get(f"/api/approvals/{ids[M1]}", headers=auth(M1))
    assert response.status_code == 200
    assert response.json()["submission"]["id"] == submission["id"]
    assert client.get(f"/api/approvals/{ids[M1]}", headers=auth(M2)).status_code == 404


def test_requiring_approval_lists_pending_submissions(client, pending, make_form, submit):
    form, submission, ids = pending
    response = client.get("/api/forms/requiring-approval", headers=auth(M2))
    assert [s["id"] for s in response.json()] == [submission["id"]]

    reject(client, ids[M1], M1)
    assert client.get("/api/forms/requiring-approval", headers=auth(M2)).json() == []


def test_ledger_membership_fixed_at_submission(client, pending):
    form, submission, ids = pending
    client.put(f"/api/forms/{form['id']}", json={"managers": [M1]}, headers=auth(ADMIN))
    approve(client, ids[M1], M1)
    assert submission_status(client, submission["id"]) == "pending"
    body = approve(client, ids[M2], M2).json()
    assert body["submission_status"] == "approved"


def test_approval_bypassed_for_legacy_form_without_managers(client, make_form, submit):
    form = make_form()
    # rows written before managers were mandatory
    client.portal.call(
        database.execute,
        form_table.update().where(form_table.c.id == form["id"]).values(requires_approval=True),
    )
    body = submit(form["id"]).json()
    assert body["status"] == "submitted"
    assert body["approvals"] == []


def test_decision_lost_to_a_concurrent_one_is_a_conflict(client, pending):
    _, submission, ids = pending
    approve(client, ids[M1], M1)

    real_find = engine.find_approval_for_manager
    reads = []

    async def stale_first_read(approval_id, manager_email, for_update=False):
        found = await real_find(approval_id, manager_email, for_update)
        reads.append(found)
        if len(reads) == 1:
            # what a request that raced the approval would have seen
            return found.model_copy(update={"status": ApprovalStatus.PENDING})
        return found

    with patch("formflowapi.approval.find_approval_for_manager", stale_first_read):
        response = reject(client, ids[M1], M1, comments="no")
    assert response.status_code == 409
    assert response.json() == {"detail": "Approval has already been decided"}

    ledger = client.get(f"/api/submissions/{submission['id']}", headers=auth(ADMIN)).json()["approvals"]
    mine = next(a for a in ledger if a["id"] == ids[M1])
    assert mine["status"] == "approved"
    assert mine["comments"] == ""
    assert submission_status(client, submission["id"]) == "pending"


def test_same_decision_lost_to_a_concurrent_one_is_a_conflict(client, pending):
    _, _, ids = pending
    approve(client, ids[M1], M1)

    real_find = engine.find_approval_for_manager
    reads = []

    async def stale_first_read(approval_id, manager_email, for_update=False):
        found = await real_find(approval_id, manager_email, for_update)
        reads.append(found)
        return found.model_copy(update={"status": ApprovalStatus.PENDING}) if len(reads) == 1 else found

    with patch("formflowapi.approval.find_approval_for_manager", stale_first_read):
        response = approve(client, ids[M1], M1)
    assert response.status_code == 409
