import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from starlette.middleware.base import BaseHTTPMiddleware
from bookies.config import settings
from bookies.database import engine, Base, SessionLocal
from bookies.exceptions import LibraryError
from bookies.routes import auth, book, book_request, member
from bookies.services.auth import ensure_default_admin
from bookies.services.notifier import notifier
from bookies.utils.timezone import now_local

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log incoming requests."""
    async def dispatch(self, request: Request, call_next):
        auth_header = request.headers.get("Authorization")
        client_ip = request.client.host if request.client else "unknown"
        logger.info(f"{request.method} {request.url.path} - IP: {client_ip} - Auth: {'Present' if auth_header else 'Missing'}")

        response = await call_next(request)
        return response

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed the default admin and start/stop the MQTT status notifier."""
    db = SessionLocal()
    try:
        ensure_default_admin(db)
    finally:
        db.close()

    if settings.mqtt_enabled:
        logger.info("Starting MQTT status notifier...")
        notifier.connect()

    yield

    if settings.mqtt_enabled:
        logger.info("Stopping MQTT status notifier...")
        notifier.disconnect()


app = FastAPI(
    title="Bookies Library API",
    description="Backend API for browsing, borrowing and returning library books",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Logging middleware (last, to log everything)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    """Render lifecycle errors as JSON with their HTTP status."""
    logger.info(f"{request.method} {request.url.path} failed: {exc.error} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error,
            "detail": exc.message,
            "status": exc.status_code,
            "timestamp": now_local().isoformat(),
        },
    )


# Include routers
app.include_router(auth.router)
app.include_router(book.router)
app.include_router(book_request.router)
app.include_router(member.router)

@app.get("/")
async def root():
    return {"message": "Bookies Library API", "version": "1.0.0"}

@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "mqtt": notifier.is_running()}

if __name__ == "__main__":
    import uvicorn
    ssl_options = {}
    if settings.ssl_enabled:
        ssl_options = {"ssl_certfile": settings.ssl_certfile, "ssl_keyfile": settings.ssl_keyfile}
    uvicorn.run(
        "bookies.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        **ssl_options
    )
