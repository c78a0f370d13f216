from sqlalchemy import JSON, Column, String, Integer, Enum, Boolean, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship
from bikefine.models.base import Base, TimestampMixin, id_factory
from bikefine.core.constants import QueryCategory, QueryPriority, QueryStatus
from bikefine.utils.dates import utcnow


class UserQuery(Base, TimestampMixin):
    __tablename__ = 'queries'

    id = Column(String(64), primary_key=True, default=id_factory("query"))
    user_id = Column(String(64), nullable=False, index=True)
    case_id = Column(String(64), index=True)

    subject = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    category = Column(Enum(QueryCategory), nullable=False)
    priority = Column(Enum(QueryPriority), nullable=False, default=QueryPriority.MEDIUM)
    status = Column(Enum(QueryStatus), nullable=False, default=QueryStatus.OPEN)

    # Flags kept up to date by the services
    is_urgent = Column(Boolean, nullable=False, default=False)
    has_attachments = Column(Boolean, nullable=False, default=False)

    assigned_to = Column(String(64))
    tags = Column(JSON, nullable=False, default=list)
    date = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime)
    last_response_at = Column(DateTime)

    # Relationships
    responses = relationship(
        "QueryResponse",
        back_populates="query",
        cascade="all, delete-orphan",
        order_by="QueryResponse.responded_at",
        lazy="selectin",
    )
    attachments = relationship(
        "QueryAttachment",
        back_populates="query",
        cascade="all, delete-orphan",
        order_by="QueryAttachment.uploaded_at",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Query {self.id} {self.subject!r} ({self.status.value})>"


class QueryResponse(Base, TimestampMixin):
    __tablename__ = 'query_responses'

    id = Column(String(64), primary_key=True, default=id_factory("response"))
    query_id = Column(String(64), ForeignKey('queries.id'), nullable=False, index=True)
    message = Column(Text, nullable=False)
    responded_by = Column(String(100), nullable=False, default="admin")
    responded_at = Column(DateTime, nullable=False, default=utcnow)
    is_from_admin = Column(Boolean, nullable=False, default=True)
    template = Column(String(100))
    priority = Column(Enum(QueryPriority))
    internal_notes = Column(Text)
    is_edited = Column(Boolean, nullable=False, default=False)
    edited_at = Column(DateTime)

    query = relationship("UserQuery", back_populates="responses")

    def __repr__(self):
        return f"<QueryResponse {self.id} for Query {self.query_id}>"


class QueryAttachment(Base, TimestampMixin):
    __tablename__ = 'query_attachments'

    id = Column(String(64), primary_key=True, default=id_factory("attachment"))
    query_id = Column(String(64), ForeignKey('queries.id'), index=True)
    response_id = Column(String(64), index=True)
    filename = Column(String(255), nullable=False)
    original_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(100), nullable=False)
    url = Column(String(500), nullable=False)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)
    uploaded_by = Column(String(100), nullable=False, default="admin")
    is_public = Column(Boolean, nullable=False, default=True)

    query = relationship("UserQuery", back_populates="attachments")

    def __repr__(self):
        return f"<QueryAttachment {self.original_name} ({self.file_type})>"
