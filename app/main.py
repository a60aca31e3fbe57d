import logging
import time

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.api.v0 import api_router
from app.core.config import settings
from app.core.middleware import apply_middlewares

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Better Me personalized feed API built with FastAPI and Supabase",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

apply_middlewares(app)              # wires up CORS & GZip

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests with timing information.

    Note:
        Adds X-Process-Time-ms header to responses with processing time in milliseconds
    """
    start_ts = time.time()
    idem_key = request.headers.get("Idempotency-Key", "-")
    try:
        response = await call_next(request)
    except Exception as exc:
        elapsed = (time.time() - start_ts) * 1000
        logger.exception(
            f"{request.method} {request.url.path} idem={idem_key} "
            f"failed_in={elapsed:.2f}ms error={exc}"
        )
        raise
    elapsed = (time.time() - start_ts) * 1000
    logger.info(
        f"{request.method} {request.url.path} idem={idem_key} "
        f"completed_in={elapsed:.2f}ms status_code={response.status_code}"
    )
    response.headers["X-Process-Time-ms"] = f"{elapsed:.2f}"
    return response

app.include_router(api_router, prefix=settings.API_V0_STR)

@app.get("/", tags=["Health"])
def root():
    return {
        "app_name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "docs_url": "/docs" if settings.ENVIRONMENT != "production" else None,
    }

@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint for monitoring systems.
    """
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Exception handler for request validation errors.

    Returns:
        JSONResponse: A detailed error response with validation issues
    """
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_errors(exc)},
    )

def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold exception instances
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]

def get_openapi_schema():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Better Me personalized feed API built with FastAPI and Supabase",
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    # Apply bearerAuth globally (all routes)
    openapi_schema["security"] = [{"bearerAuth": []}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = get_openapi_schema

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.ENVIRONMENT == "development",
    )
