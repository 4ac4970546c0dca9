from datetime import datetime
from pydantic import BaseModel
from typing import List, Optional, Any

# Field types that only shape the layout and never carry a value
LAYOUT_FIELD_TYPES = {"section", "page-break", "spacer", "heading", "paragraph"}


class FieldSpec(BaseModel):
    id: Optional[str] = None
    type: str
    label: Optional[str] = None
    required: bool = False
    placeholder: Optional[str] = None
    options: Optional[List[Any]] = None


class FormIn(BaseModel):
    title: Optional[str] = ""
    description: Optional[str] = ""
    form_type: str = "custom"
    fields: Optional[List[FieldSpec]] = None
    managers: List[str] = []
    requires_approval: bool = False
    is_published: bool = False


class FormUpdateIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    form_type: Optional[str] = None
    fields: Optional[List[FieldSpec]] = None
    managers: Optional[List[str]] = None
    requires_approval: Optional[bool] = None
    is_published: Optional[bool] = None
    # read-only, rejected when sent
    id: Optional[Any] = None
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None


class Form(BaseModel):
    id: int
    title: str
    description: Optional[str] = ""
    form_type: Optional[str] = "custom"
    fields: List[FieldSpec] = []
    managers: List[str] = []
    requires_approval: bool = False
    is_published: bool = False
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FormSummary(BaseModel):
    id: int
    title: str
    form_type: Optional[str] = None


class FormTemplate(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    fields: List[FieldSpec] = []
    is_active: bool = True


class FromTemplateIn(BaseModel):
    title: Optional[str] = None
    managers: List[str] = []
    requires_approval: bool = False


class FormTemplateIn(BaseModel):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    fields: Optional[List[FieldSpec]] = None
    is_active: bool = True
