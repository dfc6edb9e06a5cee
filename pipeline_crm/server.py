"""
Pipeline CRM - API Backend

Démarre avec:
    uvicorn pipeline_crm.server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from pipeline_crm.config import CORS_ORIGINS, LOG_LEVEL, close_db, get_db
from pipeline_crm.services.errors import PipelineError

# Configuration logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("pipeline_crm")

app = FastAPI(
    title="Pipeline CRM",
    description="Pipeline de leads: statuts, serviços, distribuição",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERREURS MÉTIER ====================

@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    if exc.status_code >= 500:
        logger.error(f"[API] {request.method} {request.url.path}: {exc.message} {exc.details}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__, "details": exc.details}
    )


# ==================== IMPORT DES ROUTES ====================

from pipeline_crm.routes import auth, closers, distribution, leads, public, services, settings, stats

app.include_router(auth.router, prefix="/api")
app.include_router(public.router, prefix="/api")
app.include_router(leads.router, prefix="/api")
app.include_router(services.router, prefix="/api")
app.include_router(closers.router, prefix="/api")
app.include_router(distribution.router, prefix="/api")
app.include_router(settings.router, prefix="/api")
app.include_router(stats.router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok", "version": "1.0.0"}


# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup():
    db = get_db()

    await db.users.create_index("email", unique=True)
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")
    await db.leads.create_index("id", unique=True)
    await db.leads.create_index("status")
    await db.leads.create_index("vendedor_id")
    await db.leads.create_index("created_at")
    await db.lead_service_tags.create_index([("lead_id", 1), ("version", 1)])
    await db.lead_servicos_vendidos.create_index([("lead_id", 1), ("version", 1)])
    await db.vendedor_distribution.create_index("vendedor_id", unique=True)
    await db.user_roles.create_index([("user_id", 1), ("role", 1)], unique=True)

    logger.info("🚀 Pipeline CRM démarré")


@app.on_event("shutdown")
async def shutdown_db_client():
    close_db()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
