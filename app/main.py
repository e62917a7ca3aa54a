from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from app.core import config
from app.core.database.engine import init_db
from app.core.errors import AuthorizationEngineError
from app.features.directory.routes import router as directory_router
from app.features.folders.routes import router as folder_router
from app.features.permissions.routes import router as permission_router
from app.features.users.dependencies import get_authorization_header
from app.features.users.routes import router as user_router
from app.utils import get_logger


log = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    log.info("Creating tables on %s", config.SQLALCHEMY_DATABASE_URL.split("://", 1)[0])
    await init_db()
    yield


log.info("Initializing folder share authorization server")
app = FastAPI(
    title="Folder Share Authorization",
    description="Role capabilities, folder permission grants and effective access resolution",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)

# Requests are throttled per bearer token
limiter = Limiter(key_func=get_authorization_header, default_limits=[config.RATE_LIMIT])
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


class RouteTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        route = metric_name.removeprefix("authz.app.features.")
        log.debug("%s took %.4fs %s", route, timing, tags)


app.add_middleware(TimingMiddleware, client=RouteTimings(), metric_namer=StarletteScopeToName("authz", app))

if config.ENABLE_DOCS:
    log.warning("API docs are served at /docs")
if config.ALLOW_ORIGIN:
    log.warning("CORS allowed for %s", config.ALLOW_ORIGIN)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.ALLOW_ORIGIN],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ============================================================================
# Error handlers
# ============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    """Flatten pydantic errors to {field: message} with a 400."""
    fields = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        fields[".".join(location) or "root"] = error.get("msg", "Invalid value")
    log.info("Rejected request fields: %s", fields)
    return JSONResponse(status_code=400, content=jsonable_encoder(fields))


@app.exception_handler(AuthorizationEngineError)
async def engine_error_handler(_request: Request, exc: AuthorizationEngineError):
    """Domain errors carry their own HTTP status."""
    log.info("%s: %s", type(exc).__name__, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": f"Rate limit exceeded: {exc.detail}"}, status_code=429)


# ============================================================================
# Routes
# ============================================================================

@app.get("/")
async def root():
    return {
        "service": "folder-share-authz",
        "version": app.version,
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "auth": "Bearer token required on every route except / and /health",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


app.include_router(user_router, prefix="/users", tags=["users"])
app.include_router(directory_router, tags=["directory"])
app.include_router(folder_router, prefix="/folders", tags=["folders"])
app.include_router(permission_router, prefix="/permissions", tags=["permissions"])
