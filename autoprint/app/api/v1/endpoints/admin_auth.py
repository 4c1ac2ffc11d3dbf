"""
Operator authentication endpoints.

Operators sign in with the configured admin credentials and receive an
opaque session token held by the application's session store.
"""

import logging
import secrets
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from autoprint.app.db.session import get_db, unit_of_work
from autoprint.app.schemas.admin import OperatorLogin, OperatorSessionResponse
from autoprint.app.core.config import settings
from autoprint.app.core.guards import require_operator
from autoprint.app.core.exceptions import AuthenticationError
from autoprint.app.services.audit import log_event, AuditAction, ResourceType

logger = logging.getLogger("autoprint.auth")

router = APIRouter(prefix="/admin", tags=["Admin - Authentication"])


@router.post("/login", response_model=OperatorSessionResponse)
async def operator_login(
    credentials: OperatorLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Exchange operator credentials for a session token.

    Logs successful and failed login attempts for security monitoring.
    """
    client_ip = request.client.host if request.client else None
    username_ok = secrets.compare_digest(credentials.username, settings.admin_username)
    password_ok = secrets.compare_digest(credentials.password, settings.admin_password)

    if not (username_ok and password_ok):
        logger.warning("Failed operator login for %r from %s", credentials.username, client_ip)
        raise AuthenticationError("Invalid operator credentials")

    store = request.app.state.session_store
    token = await store.create(settings.admin_username, settings.admin_email)

    async with unit_of_work(db):
        await log_event(
            db=db,
            action=AuditAction.OPERATOR_LOGIN,
            actor_username=settings.admin_username,
            resource_type=ResourceType.SESSION,
            ip_address=client_ip
        )

    return OperatorSessionResponse(
        access_token=token,
        username=settings.admin_username,
        expires_in=int(store.ttl.total_seconds())
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def operator_logout(
    request: Request,
    operator: dict = Depends(require_operator),
    db: AsyncSession = Depends(get_db)
):
    await request.app.state.session_store.expire(operator["token"])

    async with unit_of_work(db):
        await log_event(
            db=db,
            action=AuditAction.OPERATOR_LOGOUT,
            actor_username=operator["username"],
            resource_type=ResourceType.SESSION,
            ip_address=request.client.host if request.client else None
        )
