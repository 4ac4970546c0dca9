"""Form registry: form definitions, publishing and templates."""

import logging
from typing import Iterable, List, Optional

from formflowapi.database import database, form_table, formtemplate_table, store_transaction, utcnow
from formflowapi.errors import NotFoundError, ValidationError
from formflowapi.models.form import (
    LAYOUT_FIELD_TYPES,
    FieldSpec,
    Form,
    FormIn,
    FormTemplate,
    FormTemplateIn,
    FormUpdateIn,
    FromTemplateIn,
)
from formflowapi.security import normalize_email
from formflowapi.submissions import delete_submissions_for_form

logger = logging.getLogger(__name__)

READ_ONLY_FORM_FIELDS = ("id", "created_at", "updated_at")


def form_from_row(row) -> Form:
    return Form(
        id=row.id,
        title=row.title,
        description=row.description or "",
        form_type=row.form_type,
        fields=row.fields or [],
        managers=row.managers or [],
        requires_approval=bool(row.requires_approval),
        is_published=bool(row.is_published),
        created_by=row.created_by,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def validate_fields(fields: Optional[List[FieldSpec]]) -> List[dict]:
    """Check the ordered field list and give unnamed fields a positional id."""
    if not fields:
        raise ValidationError("Form configuration must include a non-empty fields array")

    validated = []
    seen = set()
    for index, field in enumerate(fields):
        field_id = field.id or f"field-{index}"
        if field_id in seen:
            raise ValidationError(f"Duplicate field id '{field_id}'")
        seen.add(field_id)
        if not field.type:
            raise ValidationError(f"Field '{field_id}' has no type")
        validated.append({**field.model_dump(), "id": field_id})
    return validated


def value_fields(fields: Iterable[FieldSpec]) -> List[FieldSpec]:
    return [f for f in fields if f.type not in LAYOUT_FIELD_TYPES]


def clean_managers(managers: Iterable[str]) -> List[str]:
    cleaned = []
    for manager in managers:
        email = normalize_email(manager)
        if email and email not in cleaned:
            cleaned.append(email)
    return cleaned


def check_approval_config(requires_approval: bool, managers: List[str]):
    if requires_approval and not managers:
        raise ValidationError("Forms requiring approval must name at least one manager")


async def get_form(form_id: int) -> Form:
    query = form_table.select().where(form_table.c.id == form_id)
    row = await database.fetch_one(query)
    if not row:
        raise NotFoundError("Form not found")
    return form_from_row(row)


async def list_forms(
    published: Optional[bool] = None,
    created_by: Optional[str] = None,
    form_type: Optional[str] = None,
) -> List[Form]:
    query = form_table.select()
    if published is not None:
        query = query.where(form_table.c.is_published == published)
    if created_by:
        query = query.where(form_table.c.created_by == normalize_email(created_by))
    if form_type:
        query = query.where(form_table.c.form_type == form_type)
    query = query.order_by(form_table.c.created_at.desc(), form_table.c.id.desc())
    rows = await database.fetch_all(query)
    return [form_from_row(row) for row in rows]


async def list_manager_forms(email: str) -> List[Form]:
    """Forms requiring approval where ``email`` is one of the managers.

    The managers JSON list is matched in Python; only the indexed
    ``requires_approval`` filter runs in SQL.
    """
    query = (
        form_table.select()
        .where(form_table.c.requires_approval.is_(True))
        .order_by(form_table.c.created_at.desc(), form_table.c.id.desc())
    )
    rows = await database.fetch_all(query)
    return [form_from_row(row) for row in rows if email in (row.managers or [])]


async def create_form(form: FormIn, created_by: str) -> Form:
    title = form.title.strip() if form.title else ""
    if not title:
        raise ValidationError("Title is required")
    fields = validate_fields(form.fields)
    managers = clean_managers(form.managers)
    check_approval_config(form.requires_approval, managers)

    now = utcnow()
    query = form_table.insert().values(
        title=title,
        description=(form.description or "").strip(),
        form_type=form.form_type,
        fields=fields,
        managers=managers,
        requires_approval=form.requires_approval,
        is_published=form.is_published,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    async with store_transaction("create_form", email=created_by):
        form_id = await database.execute(query)
    logger.info(f"Form {form_id} created", extra={"email": created_by})
    return await get_form(form_id)


async def update_form(form_id: int, changes: FormUpdateIn) -> Form:
    sent = changes.model_fields_set
    read_only = [name for name in READ_ONLY_FORM_FIELDS if name in sent]
    if read_only:
        raise ValidationError(f"Cannot update read-only field(s): {', '.join(read_only)}")

    existing = await get_form(form_id)
    values = {}
    if "title" in sent:
        if not changes.title or not changes.title.strip():
            raise ValidationError("Title is required")
        values["title"] = changes.title.strip()
    if "description" in sent:
        values["description"] = (changes.description or "").strip()
    if "form_type" in sent and changes.form_type:
        values["form_type"] = changes.form_type
    if "fields" in sent:
        values["fields"] = validate_fields(changes.fields)
    if "managers" in sent:
        values["managers"] = clean_managers(changes.managers or [])
    if "requires_approval" in sent and changes.requires_approval is not None:
        values["requires_approval"] = changes.requires_approval
    if "is_published" in sent and changes.is_published is not None:
        values["is_published"] = changes.is_published

    check_approval_config(
        values.get("requires_approval", existing.requires_approval),
        values.get("managers", existing.managers),
    )
    values["updated_at"] = utcnow()

    query = form_table.update().where(form_table.c.id == form_id).values(**values)
    logger.debug(query)
    async with store_transaction("update_form", form_id=form_id):
        await database.execute(query)
    return await get_form(form_id)


async def set_published(form_id: int, published: bool) -> Form:
    await get_form(form_id)
    query = form_table.update().where(form_table.c.id == form_id).values(
        is_published=published,
        updated_at=utcnow(),
    )
    async with store_transaction("publish_form", form_id=form_id):
        await database.execute(query)
    logger.info(f"Form {form_id} {'published' if published else 'unpublished'}")
    return await get_form(form_id)


async def delete_form(form_id: int) -> int:
    """Delete a form with its submissions and their approvals.

    Returns the number of submissions deleted.
    """
    await get_form(form_id)
    async with store_transaction("delete_form", form_id=form_id):
        deleted = await delete_submissions_for_form(form_id)
        await database.execute(form_table.delete().where(form_table.c.id == form_id))
    logger.info(f"Form {form_id} deleted with {deleted} submission(s)")
    return deleted


def template_from_row(row) -> FormTemplate:
    return FormTemplate(
        id=row.id,
        name=row.name,
        description=row.description,
        category=row.category,
        fields=row.fields or [],
        is_active=bool(row.is_active),
    )


async def list_templates(category: Optional[str] = None, active: Optional[bool] = None) -> List[FormTemplate]:
    query = formtemplate_table.select()
    if category:
        query = query.where(formtemplate_table.c.category == category)
    if active is not None:
        query = query.where(formtemplate_table.c.is_active == active)
    rows = await database.fetch_all(query.order_by(formtemplate_table.c.name))
    return [template_from_row(row) for row in rows]


async def create_template(template: FormTemplateIn) -> FormTemplate:
    name = (template.name or "").strip()
    if not name:
        raise ValidationError("Template name is required")
    fields = validate_fields(template.fields)

    q = formtemplate_table.select().where(formtemplate_table.c.name == name)
    if await database.fetch_one(q):
        raise ValidationError("Template with this name already exists")

    query = formtemplate_table.insert().values(
        name=name,
        description=template.description,
        category=template.category,
        fields=fields,
        is_active=template.is_active,
    )
    async with store_transaction("create_template"):
        template_id = await database.execute(query)
    row = await database.fetch_one(
        formtemplate_table.select().where(formtemplate_table.c.id == template_id)
    )
    return template_from_row(row)


async def create_form_from_template(template_id: int, body: FromTemplateIn, created_by: str) -> Form:
    query = formtemplate_table.select().where(formtemplate_table.c.id == template_id)
    row = await database.fetch_one(query)
    if not row:
        raise NotFoundError("Template not found")
    template = template_from_row(row)

    form = FormIn(
        title=body.title or template.name,
        description=template.description or "",
        form_type="template",
        fields=template.fields,
        managers=body.managers,
        requires_approval=body.requires_approval,
        is_published=False,
    )
    return await create_form(form, created_by)

