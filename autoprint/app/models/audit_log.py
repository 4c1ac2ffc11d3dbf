"""
Audit Log Database Model.

Tracks money movements and operator actions for reconciliation and dispute
handling.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from autoprint.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking payment and queue events.

    Events logged:
    - PAYMENT_VERIFIED / PAYMENT_COMPLETED / PAYMENT_REJECTED
    - PRINT_JOB_ADMITTED / PRINT_JOB_STARTED / PRINT_JOB_COMPLETED / PRINT_JOB_FAILED
    - PRINT_JOB_HELD / PRINT_JOB_RECONFIRMED
    - OPERATOR_LOGIN / OPERATOR_LOGOUT
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which record the action touched
    resource_type = Column(String(50), nullable=True, index=True)
    resource_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, resource={self.resource_type}:{self.resource_id})>"
