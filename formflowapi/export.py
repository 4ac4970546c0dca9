import csv
import io
import re
from datetime import date
from typing import Iterable, List, Optional

from formflowapi.models.form import Form
from formflowapi.models.submission import FieldSnapshot, Submission
from formflowapi.registry import value_fields

BASE_HEADERS = ["Submission ID", "Submitter Name", "Submitter Email", "Status", "Submitted At"]


def export_filename(form: Form, today: Optional[date] = None) -> str:
    today = today or date.today()
    safe_title = re.sub(r"[^a-zA-Z0-9]", "_", form.title)
    return f"{safe_title}_submissions_{today.isoformat()}.csv"


def cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return str(value)


def submissions_to_csv(form: Form, submissions: Iterable[Submission]) -> str:
    """Render submissions as CSV, one column per value-carrying field.

    Columns follow the form's current fields. Values are matched by field id,
    and a submission's own snapshot supplies columns the form no longer has.
    """
    columns: List[FieldSnapshot] = [
        FieldSnapshot(id=f.id, label=f.label, type=f.type)
        for f in value_fields(form.fields)
    ]
    submissions = list(submissions)
    seen = {c.id for c in columns}
    for submission in submissions:
        for snap in submission.field_snapshot:
            if snap.id not in seen:
                columns.append(snap)
                seen.add(snap.id)

    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(BASE_HEADERS + [c.label or c.id for c in columns])
    for submission in submissions:
        submitted_at = submission.submitted_at.strftime("%Y-%m-%d %H:%M:%S") if submission.submitted_at else ""
        row = [
            submission.id,
            submission.submitter_name or "Anonymous",
            submission.submitter_email or "",
            submission.status.value,
            submitted_at,
        ]
        row.extend(cell(submission.data.get(c.id)) for c in columns)
        writer.writerow(row)
    return output.getvalue()
