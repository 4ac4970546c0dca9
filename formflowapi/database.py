import datetime
import logging
from contextlib import asynccontextmanager
from typing import Optional

import databases
import sqlalchemy
from formflowapi.config import config
from formflowapi.errors import FormFlowError, StoreError

logger = logging.getLogger(__name__)


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


metadata = sqlalchemy.MetaData()


form_table = sqlalchemy.Table(
    "form",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("title", sqlalchemy.String(256), nullable=False),
    sqlalchemy.Column("description", sqlalchemy.Text, default=""),
    sqlalchemy.Column("form_type", sqlalchemy.String(32), default="custom"),
    sqlalchemy.Column("fields", sqlalchemy.JSON, nullable=False), # ordered list of field specs
    sqlalchemy.Column("managers", sqlalchemy.JSON, default=[]), # list of manager emails
    sqlalchemy.Column("requires_approval", sqlalchemy.Boolean, default=False, index=True),
    sqlalchemy.Column("is_published", sqlalchemy.Boolean, default=False),
    sqlalchemy.Column("created_by", sqlalchemy.String(256)),
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime, onupdate=sqlalchemy.func.now()),
)

formtemplate_table = sqlalchemy.Table(
    "form_template",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("name", sqlalchemy.String(128), nullable=False, unique=True),
    sqlalchemy.Column("description", sqlalchemy.Text),
    sqlalchemy.Column("category", sqlalchemy.String(64)),
    sqlalchemy.Column("fields", sqlalchemy.JSON, nullable=False),
    sqlalchemy.Column("is_active", sqlalchemy.Boolean, default=True),
)

submission_table = sqlalchemy.Table(
    "submission",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("form_id", sqlalchemy.ForeignKey("form.id"), nullable=False),
    sqlalchemy.Column("data", sqlalchemy.JSON, nullable=False),
    # [{id, label, type}, ...] taken from the form when the submission was made
    sqlalchemy.Column("field_snapshot", sqlalchemy.JSON, default=[]),
    sqlalchemy.Column("submitter_email", sqlalchemy.String(256), nullable=False),
    sqlalchemy.Column("submitter_name", sqlalchemy.String(256)),
    sqlalchemy.Column("ip_address", sqlalchemy.String(64)),
    sqlalchemy.Column("status", sqlalchemy.String(16), nullable=False), # submitted, pending, approved, rejected
    sqlalchemy.Column("submitted_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.Column("updated_at", sqlalchemy.DateTime, onupdate=sqlalchemy.func.now()),
)

approval_table = sqlalchemy.Table(
    "approval",
    metadata,
    sqlalchemy.Column("id", sqlalchemy.Integer, primary_key=True),
    sqlalchemy.Column("submission_id", sqlalchemy.ForeignKey("submission.id"), nullable=False),
    sqlalchemy.Column("manager_email", sqlalchemy.String(256), nullable=False),
    sqlalchemy.Column("status", sqlalchemy.String(16), nullable=False, default="pending"),
    sqlalchemy.Column("comments", sqlalchemy.Text),
    sqlalchemy.Column("approved_at", sqlalchemy.DateTime),
    sqlalchemy.Column("approved_by", sqlalchemy.String(256)), # manager display name
    sqlalchemy.Column("created_at", sqlalchemy.DateTime, default=sqlalchemy.func.now()),
    sqlalchemy.UniqueConstraint(
        "submission_id", "manager_email",
        name="uq_approval_one_per_manager"
    ),
)


def engine_connect_args(url: Optional[str]) -> dict:
    return {"check_same_thread": False} if (url or "").startswith("sqlite") else {}


engine = sqlalchemy.create_engine(config.DATABASE_URL, connect_args=engine_connect_args(config.DATABASE_URL))

metadata.create_all(engine)
database = databases.Database(
    config.DATABASE_URL, force_rollback=config.DB_FORCE_ROLL_BACK
)


@asynccontextmanager
async def store_transaction(operation: str, **context):
    """Run a unit of work in one transaction.

    Domain errors propagate unchanged after the rollback; anything else is
    logged with its context and surfaced as an opaque ``StoreError``.
    """
    try:
        async with database.transaction():
            yield
    except FormFlowError:
        raise
    except Exception as e:
        logger.exception(f"Store failure during {operation}", extra=context)
        raise StoreError() from e
