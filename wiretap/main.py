import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from wiretap.config.settings import settings
from wiretap.core.errors import WiretapError
from wiretap.core.runtime import CoreRuntime
from wiretap.database.supabase_client import SupabaseClient
from wiretap.modules.instances import routes as instances_routes
from wiretap.modules.sessions import routes as sessions_routes
from wiretap.modules.workshops import routes as workshops_routes
from wiretap.modules.providers import routes as providers_routes

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    redirect_slashes=False,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(WiretapError)
async def wiretap_exception_handler(request: Request, exc: WiretapError):
    if exc.status_code >= 500:
        logger.error(f"{exc.code.value}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    if settings.is_production:
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=500, content={"detail": str(exc)})


class SecurityHeadersMiddleware:
    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message):
            if message["type"] == "http.response.start":
                message.setdefault("headers", [])
                message["headers"].extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                ])
            await send(message)

        await self.app(scope, receive, send_with_headers)


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(instances_routes.router, prefix="/api/v1")
app.include_router(sessions_routes.router, prefix="/api/v1")
app.include_router(workshops_routes.router, prefix="/api/v1")
app.include_router(providers_routes.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    logger.info("Application startup")
    # Timers and sweeps have no request context, so they use the service-role client
    runtime = CoreRuntime(SupabaseClient.get_service_client(), settings)
    app.state.runtime = runtime
    await runtime.start()


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown")
    runtime = getattr(app.state, "runtime", None)
    if runtime is not None:
        await runtime.close()


@app.get("/health")
@limiter.exempt
async def health():
    return {"status": "healthy"}


@app.get("/ready")
@limiter.exempt
async def ready():
    """Readiness probe: ready once the core runtime is up."""
    if getattr(app.state, "runtime", None) is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return {"status": "ready"}
