"""FastAPI application entry point for the CSR Draft Engine."""

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.config import get_settings

app = FastAPI(
    title="CSR Draft Engine",
    description="Drafts ICH E3 Clinical Study Reports from uploaded source documents",
    version="0.1.0",
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Liveness plus the drafting configuration a run would use."""
    settings = get_settings()
    return JSONResponse(
        content={
            "status": "ok",
            "env": settings.DRAFT_ENGINE_ENV,
            "llm_configured": bool(settings.ANTHROPIC_API_KEY),
            "default_mode": settings.DEFAULT_GENERATION_MODE,
        },
        status_code=200,
    )


app.include_router(api_router, prefix="/v1", tags=["v1"])
