import secrets
import string
import time

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base

from bikefine.utils.dates import utcnow

Base = declarative_base()

_BASE36 = string.digits + string.ascii_lowercase


def generate_id(prefix: str) -> str:
    """Opaque record id: ``<prefix>-<epoch millis>-<9 random base36 chars>``"""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def id_factory(prefix: str):
    return lambda: generate_id(prefix)


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
