"""
Audit logging service for tracking payment and queue events.

Audit rows are written inside the caller's unit of work, so an audit entry
exists exactly when the transition it describes was committed.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from autoprint.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    OPERATOR_LOGIN = "OPERATOR_LOGIN"
    OPERATOR_LOGOUT = "OPERATOR_LOGOUT"

    # Payments
    PAYMENT_CREATED = "PAYMENT_CREATED"
    PAYMENT_VERIFIED = "PAYMENT_VERIFIED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_REJECTED = "PAYMENT_REJECTED"

    # Print jobs
    PRINT_JOB_CREATED = "PRINT_JOB_CREATED"
    PRINT_JOB_ADMITTED = "PRINT_JOB_ADMITTED"
    PRINT_JOB_STARTED = "PRINT_JOB_STARTED"
    PRINT_JOB_COMPLETED = "PRINT_JOB_COMPLETED"
    PRINT_JOB_FAILED = "PRINT_JOB_FAILED"
    PRINT_JOB_HELD = "PRINT_JOB_HELD"
    PRINT_JOB_RECONFIRMED = "PRINT_JOB_RECONFIRMED"
    PRINT_JOB_HOLD_EXPIRED = "PRINT_JOB_HOLD_EXPIRED"

    # Pricing
    PRICING_RULE_CREATED = "PRICING_RULE_CREATED"

    # Accounts
    ACCOUNT_UPDATED = "ACCOUNT_UPDATED"
    BALANCE_ADJUSTED = "BALANCE_ADJUSTED"


class ResourceType:
    PAYMENT = "payment"
    PRINT_JOB = "print_job"
    PRICING_RULE = "pricing_rule"
    ACCOUNT = "account"
    SESSION = "session"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Record an audit event in the current transaction.

    Args:
        db: Database session (transaction owned by the caller's unit of work)
        action: Action being performed (use AuditAction constants)
        actor_id: Account ID of the actor, None for operators and the system
        actor_username: Username of the actor
        resource_type: Kind of record touched (use ResourceType constants)
        resource_id: ID of the record touched
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Created AuditLog instance (flushed, not committed)
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    resource_type: Optional[str] = None,
    resource_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if resource_type:
        query = query.where(AuditLog.resource_type == resource_type)

    if resource_id:
        query = query.where(AuditLog.resource_id == resource_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
