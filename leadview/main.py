from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .routers import contacts
from .services.catalog import CONTACT_CATALOG
from .config import settings
from .schemas.errors import ConfigurationError
from .utils.logger import setup_logger
import time

# Configure logging
logger = setup_logger("leadview", settings.logging.log_file("leadview"))

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Search, filter, sort and paginate CRM contact snapshots",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Status document
@app.get("/")
async def root():
    return {
        "message": settings.PROJECT_NAME,
        "status": "active",
        "api_version": "1.0.0",
        "contact_fields": len(CONTACT_CATALOG.fields),
        "snapshot_cache": dict(contacts.snapshot_service.stats),
        "documentation": "/docs"
    }

# Include routers
app.include_router(contacts.router, prefix=settings.API_V1_STR)

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    client_host = request.client.host if request.client else "unknown"

    logger.info(
        f"Request started: {request.method} {request.url.path} "
        f"Client: {client_host}"
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"Status: {response.status_code} Duration: {duration:.3f}s"
    )

    return response

# Error handling
@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(
        f"Invalid query configuration for {request.method} {request.url.path}: {exc.message}"
    )
    return JSONResponse(
        status_code=400,
        content={"detail": exc.message, "error_code": exc.error_code}
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Global error handler caught exception for request "
        f"{request.method} {request.url.path}",
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )
