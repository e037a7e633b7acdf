from fastapi import APIRouter

from dhamira.api.v1.routers import (
    audit_logs,
    branches,
    clients,
    credit_assessments,
    groups,
    guarantors,
    health,
    loans,
    savings,
    session,
    users,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(session.router)
api_router.include_router(loans.router)
api_router.include_router(credit_assessments.router)
api_router.include_router(guarantors.router)
api_router.include_router(clients.router)
api_router.include_router(groups.router)
api_router.include_router(savings.router)
api_router.include_router(branches.router)
api_router.include_router(users.router)
api_router.include_router(audit_logs.router)

__all__ = ["api_router"]
