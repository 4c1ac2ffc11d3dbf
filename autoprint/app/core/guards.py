"""
Security guards for role-based access and operator sessions.

Provides dependencies for protecting endpoints.
"""

from typing import List
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from autoprint.app.models.enums import AccountRole
from autoprint.app.core.dependencies import get_current_account
from autoprint.app.core.exceptions import AuthenticationError, InsufficientPermissionsError

# Operator tokens are optional at the scheme level so a missing header is a 401
operator_security = HTTPBearer(auto_error=False)


def require_role(allowed_roles: List[AccountRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/print-jobs")
        async def list_jobs(current_account: dict = Depends(require_role([AccountRole.STUDENT]))):
            ...

    Raises:
        InsufficientPermissionsError if the token role is not in allowed_roles
    """
    async def role_checker(current_account: dict = Depends(get_current_account)) -> dict:
        role_str = current_account.get("role")

        if not role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            role = AccountRole(role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if role not in allowed_roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}",
                details={"role": role.value}
            )

        return current_account

    return role_checker


require_student = require_role([AccountRole.STUDENT])


async def require_operator(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(operator_security)
) -> dict:
    """
    Dependency for operator-only endpoints.

    Looks the bearer token up in the application's session store and slides
    the session forward.

    Returns:
        {"username", "email", "token"} of the operator session

    Raises:
        AuthenticationError if the token is missing, unknown or expired
    """
    if credentials is None:
        raise AuthenticationError("Operator session required")

    session = await request.app.state.session_store.get(credentials.credentials)
    if session is None:
        raise AuthenticationError("Operator session expired or invalid")

    return {
        "username": session["username"],
        "email": session.get("email"),
        "token": credentials.credentials,
    }
