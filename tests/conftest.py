import os
from typing import Generator

import pytest
from fastapi.testclient import TestClient

os.environ["ENV_STATE"] = "test"
from formflowapi.main import app  # noqa: E402
from formflowapi.security import create_access_token  # noqa: E402

ADMIN = "admin@x.com"


def auth(email: str, name: str = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(email, name)}"}


@pytest.fixture()
def client() -> Generator:
    # entering the client runs the lifespan; each test gets a rolled-back connection
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_form(client):
    def _make_form(**overrides) -> dict:
        body = {
            "title": "Leave Request",
            "description": "Time off",
            "fields": [
                {"id": "name", "type": "text", "label": "Full Name", "required": True},
                {"id": "days", "type": "number", "label": "Days"},
                {"type": "heading", "label": "Details"},
                {"id": "reason", "type": "textarea", "label": "Reason"},
            ],
            "managers": [],
            "requires_approval": False,
            "is_published": True,
        }
        body.update(overrides)
        response = client.post("/api/forms", json=body, headers=auth(ADMIN, "Admin"))
        assert response.status_code == 201, response.text
        return response.json()

    return _make_form


@pytest.fixture()
def submit(client):
    def _submit(form_id: int, data: dict = None, headers: dict = None, **extra):
        body = {"form_id": form_id, "submission_data": data or {"name": "Jane Doe"}}
        body.update(extra)
        return client.post("/api/submissions", json=body, headers=headers or {})

    return _submit
