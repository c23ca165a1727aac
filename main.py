from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import logger, ALLOWED_ORIGINS, REDIS_URL
from core.jobs import JobRegistry
from core.store import make_store
from routers import admin, processing, ws


def create_app(registry: Optional[JobRegistry] = None) -> FastAPI:
    app = FastAPI(title="Endecode Batch Processor")

    # ---- CORS setup ----
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        response.headers.setdefault("X-Frame-Options", "DENY")
        return response

    app.state.registry = registry if registry is not None else JobRegistry(make_store(REDIS_URL))

    # ---- Include routers ----
    app.include_router(processing.router)
    app.include_router(admin.router)
    app.include_router(ws.router)

    @app.get("/")
    async def root():
        return {"ok": True}

    logger.info(f"[app] ready, CORS origins: {', '.join(ALLOWED_ORIGINS)}")
    return app


app = create_app()
