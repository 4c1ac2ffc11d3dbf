"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from autoprint.app.api.v1.endpoints import (
    documents, print_jobs, payments, account,
    admin_auth, admin_queue, admin_billing, admin_accounts
)

router = APIRouter()

# Student endpoints
router.include_router(documents.router)
router.include_router(print_jobs.router)
router.include_router(payments.router)
router.include_router(account.router)

# Operator endpoints
router.include_router(admin_auth.router)
router.include_router(admin_queue.router)
router.include_router(admin_billing.router)
router.include_router(admin_accounts.router)
