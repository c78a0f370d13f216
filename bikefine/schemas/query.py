from datetime import datetime
from typing import List, Optional

from pydantic import field_validator

from bikefine.core.constants import QueryCategory, QueryPriority, QueryStatus
from bikefine.schemas.base import CamelModel, strip_html


class QueryCreate(CamelModel):
    user_id: str
    case_id: Optional[str] = None
    subject: str
    message: str
    category: QueryCategory
    priority: QueryPriority = QueryPriority.MEDIUM
    status: QueryStatus = QueryStatus.OPEN
    is_urgent: bool = False
    assigned_to: Optional[str] = None
    tags: List[str] = []

    @field_validator('message')
    @classmethod
    def format_message(cls, v):
        return strip_html(v)


class QueryUpdate(CamelModel):
    case_id: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    category: Optional[QueryCategory] = None
    priority: Optional[QueryPriority] = None
    status: Optional[QueryStatus] = None
    is_urgent: Optional[bool] = None
    assigned_to: Optional[str] = None
    tags: Optional[List[str]] = None

    @field_validator('message')
    @classmethod
    def format_message(cls, v):
        return strip_html(v)


class QueryResponseCreate(CamelModel):
    query_id: Optional[str] = None
    message: Optional[str] = None
    responded_by: str = "admin"
    is_from_admin: bool = True
    template: Optional[str] = None
    priority: Optional[QueryPriority] = None
    internal_notes: Optional[str] = None
    mark_as_resolved: bool = False

    @field_validator('message')
    @classmethod
    def format_message(cls, v):
        return strip_html(v)


class QueryResponseOut(CamelModel):
    id: str
    query_id: str
    message: str
    responded_by: str
    responded_at: datetime
    is_from_admin: bool
    template: Optional[str] = None
    priority: Optional[QueryPriority] = None
    internal_notes: Optional[str] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None


class QueryAttachmentOut(CamelModel):
    id: str
    query_id: Optional[str] = None
    response_id: Optional[str] = None
    filename: str
    original_name: str
    file_size: int
    file_type: str
    url: str
    uploaded_at: datetime
    uploaded_by: str
    is_public: bool


class QueryOut(CamelModel):
    id: str
    user_id: str
    case_id: Optional[str] = None
    subject: str
    message: str
    category: QueryCategory
    priority: QueryPriority
    status: QueryStatus
    is_urgent: bool
    has_attachments: bool
    assigned_to: Optional[str] = None
    tags: List[str] = []
    date: datetime
    resolved_at: Optional[datetime] = None
    last_response_at: Optional[datetime] = None
    responses: List[QueryResponseOut] = []
    attachments: List[QueryAttachmentOut] = []
    created_at: datetime
    updated_at: datetime
