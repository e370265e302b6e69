# app/api/v1/router.py
from fastapi import APIRouter

from app.config.settings import settings
from app.api.v1.auth import router as auth_router
from app.modules.companies.router import router as companies_router
from app.modules.users.router import router as users_router
from app.modules.reports.router import router as reports_router
from app.modules.billing.router import router as billing_router
from app.modules.sessions.router import router as sessions_router


# Crear router principal de la API v1
api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(
    companies_router,
    prefix="/companies",
    tags=["Companies"]
)

api_router.include_router(
    users_router,
    prefix="/users",
    tags=["Users"]
)

api_router.include_router(
    reports_router,
    prefix="/reports",
    tags=["Reports"]
)

api_router.include_router(
    billing_router,
    prefix="/billing",
    tags=["Billing"]
)

api_router.include_router(
    sessions_router,
    prefix="/sessions",
    tags=["Sessions"]
)


@api_router.get("/")
async def api_root():
    """Root endpoint de la API"""
    return {
        "message": f"{settings.app_name} v1",
        "version": settings.version,
        "status": "active",
        "docs": "/docs",
        "available_endpoints": {
            "authentication": "/api/v1/auth",
            "companies": "/api/v1/companies",
            "users": "/api/v1/users",
            "reports": "/api/v1/reports",
            "billing": "/api/v1/billing",
            "sessions": "/api/v1/sessions"
        }
    }
