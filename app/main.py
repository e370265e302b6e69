# app/main.py
import asyncio
import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.config.settings import settings
from app.config.database import SessionLocal, engine
from app.core.errors import setup_error_handlers
from app.core.middleware import setup_middleware
from app.api.v1.router import api_router
from app.modules.sessions.tasks import run_stale_session_sweeper
from app.shared.database.models import Base

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"{settings.app_name} iniciando...")
    logger.info(f"Versión: {settings.version}")
    logger.info(f"Entorno: {'Development' if settings.debug else 'Production'}")
    logger.info(f"JWT: {settings.algorithm}, expira en {settings.access_token_expire_minutes} minutos")
    logger.info(f"Base de datos: {settings.database_url.split('@')[1] if '@' in settings.database_url else settings.database_url}")

    Base.metadata.create_all(bind=engine)

    sweeper = None
    if settings.session_sweep_minutes > 0:
        sweeper = asyncio.create_task(run_stale_session_sweeper(SessionLocal, settings.session_sweep_minutes))

    yield

    # Shutdown
    logger.info(f"{settings.app_name} deteniéndose...")
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            logger.info("Limpieza de sesiones detenida")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Administración multi-tenant de empresas, usuarios, reportes BI y facturación",
    docs_url="/docs",
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan
)

# Setup middleware
setup_middleware(app)
setup_error_handlers(app)

# Include routers
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    return {
        "message": settings.app_name,
        "version": settings.version,
        "status": "running",
        "environment": "production" if not settings.debug else "development",
        "docs": "/docs",
        "api": "/api/v1"
    }


# Health check para Render
@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": settings.version,
        "app": settings.app_name,
        "environment": "production" if not settings.debug else "development"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
