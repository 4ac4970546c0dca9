import csv
import io
from datetime import date, datetime

from formflowapi.export import export_filename, submissions_to_csv
from formflowapi.models.form import FieldSpec, Form
from formflowapi.models.submission import FieldSnapshot, Submission
from tests.conftest import ADMIN, auth


def rows_of(text):
    return list(csv.reader(io.StringIO(text)))


def test_export_filename():
    form = Form(id=1, title="Leave Request: 2024/Q1")
    assert export_filename(form, today=date(2024, 3, 5)) == "Leave_Request__2024_Q1_submissions_2024-03-05.csv"


def test_csv_columns_skip_layout_fields():
    form = Form(
        id=1,
        title="T",
        fields=[
            FieldSpec(id="name", type="text", label="Name"),
            FieldSpec(id="field-1", type="heading", label="Section"),
            FieldSpec(id="tags", type="checkbox", label="Tags"),
        ],
    )
    submission = Submission(
        id=7,
        form_id=1,
        data={"name": "Doe, Jane", "tags": ["a", "b"]},
        submitter_email="jane@x.com",
        submitter_name="Jane",
        status="approved",
        submitted_at=datetime(2024, 3, 5, 9, 30),
    )
    rows = rows_of(submissions_to_csv(form, [submission]))
    assert rows[0] == ["Submission ID", "Submitter Name", "Submitter Email", "Status", "Submitted At", "Name", "Tags"]
    assert rows[1] == ["7", "Jane", "jane@x.com", "approved", "2024-03-05 09:30:00", "Doe, Jane", "a; b"]


def test_csv_keeps_removed_fields_from_snapshot():
    form = Form(id=1, title="T", fields=[FieldSpec(id="name", type="text", label="Name")])
    submission = Submission(
        id=1,
        form_id=1,
        data={"name": "Jane", "old": "x"},
        field_snapshot=[
            FieldSnapshot(id="name", label="Name", type="text"),
            FieldSnapshot(id="old", label="Old Field", type="text"),
        ],
        submitter_email="anonymous",
        status="submitted",
    )
    rows = rows_of(submissions_to_csv(form, [submission]))
    assert rows[0][5:] == ["Name", "Old Field"]
    assert rows[1][1] == "Anonymous"
    assert rows[1][5:] == ["Jane", "x"]


def test_export_endpoint(client, make_form, submit):
    form = make_form(managers=["m1@x.com"], requires_approval=True)
    submit(form["id"], {"name": "Jane Doe", "reason": "Family, trip"})

    response = client.get(f"/api/forms/{form['id']}/export", headers=auth("m1@x.com"))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith('attachment; filename="Leave_Request_submissions_')

    rows = rows_of(response.text)
    assert rows[0][5:] == ["Full Name", "Days", "Reason"]
    assert rows[1][3] == "pending"
    assert rows[1][5:] == ["Jane Doe", "", "Family, trip"]


def test_export_refused_for_non_manager(client, make_form):
    form = make_form(managers=["m1@x.com"], requires_approval=True)
    response = client.get(f"/api/forms/{form['id']}/export", headers=auth(ADMIN))
    assert response.status_code == 403
    assert response.json() == {"detail": "Access denied. You are not a manager of this form."}


def test_export_missing_form(client):
    response = client.get("/api/forms/9999/export", headers=auth("m1@x.com"))
    assert response.status_code == 404


def test_csv_header_falls_back_to_field_id():
    form = Form(id=1, title="T", fields=[FieldSpec(id="field-0", type="text")])
    submission = Submission(
        id=1, form_id=1, data={"field-0": "hello"}, submitter_email="a@x.com", status="submitted"
    )
    rows = rows_of(submissions_to_csv(form, [submission]))
    assert rows[0][5:] == ["field-0"]
    assert rows[1][5:] == ["hello"]


def test_export_filename_defaults_to_today():
    form = Form(id=1, title="T")
    assert export_filename(form) == f"T_submissions_{date.today().isoformat()}.csv"
