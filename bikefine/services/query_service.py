import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bikefine.core.constants import QueryPriority, QueryStatus
from bikefine.core.exceptions import RecordNotFoundError, RecordValidationError
from bikefine.models.query import QueryAttachment, QueryResponse, UserQuery
from bikefine.schemas.filters import QueryFilters
from bikefine.schemas.query import QueryCreate, QueryResponseCreate, QueryUpdate
from bikefine.services.base import DEFAULT_PAGE_SIZE, paginate
from bikefine.utils.dates import utcnow

logger = logging.getLogger(__name__)


def validate_query_data(data: Dict[str, Any], partial: bool = False) -> None:
    if not partial or "subject" in data:
        if len((data.get("subject") or "").strip()) < 5:
            raise RecordValidationError("Subject must be at least 5 characters long", field="subject")

    if not partial or "message" in data:
        if len((data.get("message") or "").strip()) < 10:
            raise RecordValidationError("Message must be at least 10 characters long", field="message")


async def create_query(db: AsyncSession, data: Union[QueryCreate, Dict[str, Any]]) -> UserQuery:
    if isinstance(data, dict):
        data = QueryCreate.model_validate(data)

    fields = data.model_dump()
    validate_query_data(fields)

    query = UserQuery(**fields)
    query.is_urgent = bool(data.is_urgent or data.priority == QueryPriority.URGENT)
    query.date = utcnow()
    if query.status == QueryStatus.RESOLVED:
        query.resolved_at = query.date

    db.add(query)
    await db.commit()
    await db.refresh(query)

    logger.info("Created query %s for user %s", query.id, query.user_id)
    return query


async def get_query_by_id(db: AsyncSession, query_id: str) -> Optional[UserQuery]:
    return await db.get(UserQuery, query_id)


async def update_query(db: AsyncSession, query_id: str, data: Union[QueryUpdate, Dict[str, Any]]) -> Optional[UserQuery]:
    if isinstance(data, dict):
        data = QueryUpdate.model_validate(data)

    query = await db.get(UserQuery, query_id)
    if not query:
        return None

    changes = data.model_dump(exclude_unset=True)
    for required in ("subject", "message", "category", "priority", "status", "is_urgent", "tags"):
        if required in changes and changes[required] is None:
            changes.pop(required)

    validate_query_data(changes, partial=True)

    if changes.get("status") == QueryStatus.RESOLVED and query.status != QueryStatus.RESOLVED:
        changes["resolved_at"] = utcnow()
    if changes.get("priority") == QueryPriority.URGENT:
        changes["is_urgent"] = True

    for field, value in changes.items():
        setattr(query, field, value)
    query.updated_at = utcnow()

    await db.commit()
    await db.refresh(query)
    return query


async def delete_query(db: AsyncSession, query_id: str) -> bool:
    """Delete a query together with its responses and attachments."""
    query = await db.get(UserQuery, query_id)
    if not query:
        return False

    await db.delete(query)
    await db.commit()
    return True


async def list_queries(db: AsyncSession, filters: QueryFilters, page: int = 1, limit: int = DEFAULT_PAGE_SIZE):
    query = select(UserQuery)
    conditions = []

    if filters.user_id:
        conditions.append(UserQuery.user_id == filters.user_id)
    if filters.case_id:
        conditions.append(UserQuery.case_id == filters.case_id)
    if filters.category is not None:
        conditions.append(UserQuery.category == filters.category)
    if filters.status is not None:
        conditions.append(UserQuery.status == filters.status)
    if filters.priority is not None:
        conditions.append(UserQuery.priority == filters.priority)
    if filters.assigned_to:
        conditions.append(UserQuery.assigned_to == filters.assigned_to)
    if filters.date_from:
        conditions.append(UserQuery.date >= filters.date_from)
    if filters.date_to:
        conditions.append(UserQuery.date <= filters.date_to)
    if filters.is_urgent is not None:
        conditions.append(UserQuery.is_urgent == filters.is_urgent)
    if filters.has_attachments is not None:
        conditions.append(UserQuery.has_attachments == filters.has_attachments)

    if conditions:
        query = query.where(and_(*conditions))

    query = query.order_by(UserQuery.created_at.desc(), UserQuery.id.desc())
    return await paginate(db, query, page, limit)


async def create_response(db: AsyncSession, data: QueryResponseCreate) -> QueryResponse:
    """
    Add a reply to a query and move the query along.

    The query becomes ``resolved`` when ``markAsResolved`` is set and
    ``in_progress`` otherwise.
    """
    if not data.query_id or not data.message:
        raise RecordValidationError("Query ID and message are required")

    query = await db.get(UserQuery, data.query_id)
    if not query:
        raise RecordNotFoundError("Query not found")

    now = utcnow()
    response = QueryResponse(
        message=data.message,
        responded_by=data.responded_by,
        responded_at=now,
        is_from_admin=data.is_from_admin,
        template=data.template,
        priority=data.priority,
        internal_notes=data.internal_notes,
    )
    query.responses.append(response)

    if data.mark_as_resolved:
        query.status = QueryStatus.RESOLVED
        query.resolved_at = now
    else:
        query.status = QueryStatus.IN_PROGRESS
    query.last_response_at = now
    query.updated_at = now

    await db.commit()
    await db.refresh(response)
    return response


async def get_responses(db: AsyncSession, query_id: str) -> List[QueryResponse]:
    result = await db.execute(
        select(QueryResponse)
        .where(QueryResponse.query_id == query_id)
        .order_by(QueryResponse.responded_at)
    )
    return list(result.scalars().all())


async def resolve_attachment_target(db: AsyncSession, query_id: Optional[str], response_id: Optional[str]) -> Optional[str]:
    """
    The query an attachment belongs to, checking that the query and response exist.

    Raises:
        - RecordNotFoundError: Unknown query or response.
    """
    if response_id:
        response = await db.get(QueryResponse, response_id)
        if not response:
            raise RecordNotFoundError("Response not found")
        query_id = query_id or response.query_id

    if query_id and not await db.get(UserQuery, query_id):
        raise RecordNotFoundError("Query not found")
    return query_id


async def create_attachment(
    db: AsyncSession,
    stored_file,
    query_id: Optional[str] = None,
    response_id: Optional[str] = None,
    uploaded_by: str = "admin",
    is_public: bool = True,
) -> QueryAttachment:
    """Record an uploaded file against a query or one of its responses."""
    query_id = await resolve_attachment_target(db, query_id, response_id)

    attachment = QueryAttachment(
        response_id=response_id,
        filename=stored_file.filename,
        original_name=stored_file.original_name,
        file_size=stored_file.size,
        file_type=stored_file.content_type,
        url=stored_file.url,
        uploaded_at=utcnow(),
        uploaded_by=uploaded_by,
        is_public=is_public,
    )

    if query_id:
        query = await db.get(UserQuery, query_id)
        query.attachments.append(attachment)
        query.has_attachments = True
        query.updated_at = utcnow()
    else:
        db.add(attachment)

    await db.commit()
    await db.refresh(attachment)
    return attachment
