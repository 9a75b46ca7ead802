import uuid

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func


def generate_uuid() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(),
                        onupdate=func.now(), nullable=False)


class TenantMixin:
    """Mixin for multi-tenant support"""
    tenant_id = Column(String(36), nullable=False, index=True)
