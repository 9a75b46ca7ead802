"""
Audit logging for payroll state transitions and input mutations.

Audit rows are appended to the caller's session so they commit (or roll
back) together with the change they describe.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Column, DateTime, Index, JSON, String
from sqlalchemy.orm import Session

from .database import Base
from .mixins import generate_uuid

logger = logging.getLogger(__name__)


class AuditLog(Base):
    """Append-only record of who did what to which entity."""

    __tablename__ = "payroll_audit_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    tenant_id = Column(String(36), nullable=False, index=True)
    actor_id = Column(String(36), nullable=True, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False)
    event_name = Column(String(100), nullable=False, index=True)
    details = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_tenant_timestamp", "tenant_id", "timestamp"),
    )


class AuditContext:
    """
    Audit sink bound to a tenant, an acting identity and a DB session.

    Usage:
        audit = AuditContext(db, tenant_id, actor_id)
        audit.log("payroll_run", run.id, "payroll_approved", {"employee_count": 3})
    """

    def __init__(self, db: Session, tenant_id: str, actor_id: Optional[str] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.actor_id = actor_id

    def log(
        self,
        entity_type: str,
        entity_id: str,
        event_name: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        entry = AuditLog(
            tenant_id=self.tenant_id,
            actor_id=self.actor_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            event_name=event_name,
            details=details or {},
            timestamp=datetime.utcnow(),
        )
        self.db.add(entry)
        logger.info(
            f"Audit {event_name} on {entity_type} {entity_id} "
            f"(tenant={self.tenant_id}, actor={self.actor_id})"
        )
        return entry
