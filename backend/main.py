from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import os
import sys

from database import engine, Base, SessionLocal
import models
from auth.routes import router as auth_router
from tasks.routes import router as tasks_router
from attachments.routes import router as attachments_router
from users.routes import router as users_router

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@taskmanager.com"
DEFAULT_ADMIN_PASSWORD = "admin123456"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

app = FastAPI(
    title="Taskboard API",
    description="Multi-user task board with role-based access and file attachments",
    version="1.0.0"
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(tasks_router)
app.include_router(attachments_router)
app.include_router(users_router)


# ============== Error Envelope ==============

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as {success: false, message}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a 400 with the individual field errors attached."""
    logger.debug(f"Validation errors on {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": "Validation errors",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Internal server error"},
    )


# ============== Startup: Ensure Admin User Exists ==============

@app.on_event("startup")
def ensure_admin_user():
    """
    Create tables and ensure an admin user exists on startup.

    Uses ADMIN_EMAIL / ADMIN_PASSWORD env vars if set, otherwise the local
    development defaults. The default password is refused in production.
    """
    from auth.security import hash_password, is_production_like

    Base.metadata.create_all(bind=engine)

    admin_email = os.getenv("ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL).strip().lower()
    admin_password = os.getenv("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)
    is_default_password = admin_password.strip() == DEFAULT_ADMIN_PASSWORD

    db = SessionLocal()
    try:
        admin = db.query(models.User).filter(models.User.email == admin_email).first()
        if admin:
            logger.info(f"Admin user already exists (email: {admin_email})")
            return

        # Security: Validate password strength in production-like environments
        if is_production_like():
            if not admin_password.strip() or is_default_password:
                logger.error(
                    "=" * 80 + "\n"
                    "❌ STARTUP FAILED: Secure ADMIN_PASSWORD is required in production/staging!\n"
                    "❌ Password must not be empty or the development default.\n"
                    "❌ Example: ADMIN_PASSWORD=$(openssl rand -base64 32)\n" +
                    "=" * 80
                )
                sys.exit(1)

            if len(admin_password.strip()) < 8:
                logger.error(
                    "=" * 80 + "\n"
                    "❌ STARTUP FAILED: ADMIN_PASSWORD must be at least 8 characters long!\n"
                    f"❌ Current length: {len(admin_password.strip())} characters\n" +
                    "=" * 80
                )
                sys.exit(1)

        admin = models.User(
            first_name="System",
            last_name="Administrator",
            email=admin_email,
            password_hash=hash_password(admin_password),
            role=models.UserRole.admin.value,
            is_active=True
        )
        db.add(admin)
        db.commit()

        if is_default_password:
            logger.warning(
                "=" * 80 + "\n"
                f"⚠️  SECURITY WARNING: Admin user created with DEFAULT password '{DEFAULT_ADMIN_PASSWORD}'\n"
                "⚠️  This is OK for local development but DANGEROUS for production!\n"
                "⚠️  Set ADMIN_PASSWORD environment variable to use a custom password.\n"
                f"⚠️  Login: {admin_email} / {DEFAULT_ADMIN_PASSWORD}\n" +
                "=" * 80
            )
        else:
            logger.info(f"✅ Admin user created with custom password from ADMIN_PASSWORD (login: {admin_email})")

    except SQLAlchemyError as e:
        logger.error(f"Failed to ensure admin user exists: {e}")
        db.rollback()
        # Don't fail startup - let the app run even if admin creation fails
    finally:
        db.close()


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy"}
