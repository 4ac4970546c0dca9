import logging
from typing import List, Annotated, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from formflowapi import registry
from formflowapi.approval import list_submissions_awaiting
from formflowapi.errors import ForbiddenError, NotFoundError
from formflowapi.export import export_filename, submissions_to_csv
from formflowapi.models.form import Form, FormIn, FormTemplate, FormTemplateIn, FormUpdateIn, FromTemplateIn
from formflowapi.models.submission import Submission
from formflowapi.models.user import Identity
from formflowapi.security import get_current_identity, get_optional_identity
from formflowapi.submissions import list_submissions


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[Form], status_code=200)
async def list_forms(
    current_user: Annotated[Identity, Depends(get_current_identity)],
    published: Optional[bool] = None,
    created_by: Optional[str] = None,
    form_type: Optional[str] = None,
):
    return await registry.list_forms(published=published, created_by=created_by, form_type=form_type)


@router.get("/published", response_model=List[Form], status_code=200)
async def list_published_forms():
    return await registry.list_forms(published=True)


@router.get("/templates", response_model=List[FormTemplate], status_code=200)
async def list_templates(
    current_user: Annotated[Identity, Depends(get_current_identity)],
    category: Optional[str] = None,
    active: Optional[bool] = None,
):
    return await registry.list_templates(category=category, active=active)


@router.post("/templates", response_model=FormTemplate, status_code=201)
async def create_template(template: FormTemplateIn, current_user: Annotated[Identity, Depends(get_current_identity)]):
    return await registry.create_template(template)


@router.get("/manager", response_model=List[Form], status_code=200)
async def list_manager_forms(current_user: Annotated[Identity, Depends(get_current_identity)]):
    forms = await registry.list_manager_forms(current_user.email)
    logger.debug(f"Found {len(forms)} forms managed by caller", extra={"email": current_user.email})
    return forms


@router.get("/requiring-approval", response_model=List[Submission], status_code=200)
async def list_requiring_approval(current_user: Annotated[Identity, Depends(get_current_identity)]):
    return await list_submissions_awaiting(current_user.email)


@router.get("/{fid}", response_model=Form, status_code=200)
async def get_form(fid: int, current_user: Annotated[Optional[Identity], Depends(get_optional_identity)]):
    form = await registry.get_form(fid)
    # drafts stay hidden from anonymous intake
    if not form.is_published and current_user is None:
        raise NotFoundError("Form not found")
    return form


@router.get("/{fid}/export", status_code=200)
async def export_submissions(fid: int, current_user: Annotated[Identity, Depends(get_current_identity)]):
    form = await registry.get_form(fid)
    if current_user.email not in form.managers:
        logger.warning(f"Export of form {fid} refused", extra={"email": current_user.email})
        raise ForbiddenError("Access denied. You are not a manager of this form.")

    submissions = await list_submissions(form_id=fid)
    content = submissions_to_csv(form, submissions)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename(form)}"'},
    )


@router.post("", response_model=Form, status_code=201)
async def create_form(form: FormIn, current_user: Annotated[Identity, Depends(get_current_identity)]):
    return await registry.create_form(form, created_by=current_user.email)


@router.post("/from-template/{tid}", response_model=Form, status_code=201)
async def create_form_from_template(
    tid: int,
    body: FromTemplateIn,
    current_user: Annotated[Identity, Depends(get_current_identity)],
):
    return await registry.create_form_from_template(tid, body, created_by=current_user.email)


@router.put("/{fid}", response_model=Form, status_code=200)
async def update_form(fid: int, form: FormUpdateIn, current_user: Annotated[Identity, Depends(get_current_identity)]):
    logger.debug(f"Updating form {fid}", extra={"email": current_user.email})
    return await registry.update_form(fid, form)


@router.delete("/{fid}", status_code=200)
async def delete_form(fid: int, current_user: Annotated[Identity, Depends(get_current_identity)]):
    deleted = await registry.delete_form(fid)
    return {"message": "Form deleted successfully", "deleted_submissions": deleted}


@router.patch("/{fid}/publish", response_model=Form, status_code=200)
async def publish_form(fid: int, current_user: Annotated[Identity, Depends(get_current_identity)]):
    return await registry.set_published(fid, True)


@router.patch("/{fid}/unpublish", response_model=Form, status_code=200)
async def unpublish_form(fid: int, current_user: Annotated[Identity, Depends(get_current_identity)]):
    return await registry.set_published(fid, False)
