"""Main FastAPI application"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from fastapi.openapi.utils import get_openapi
import logging

from bookstream.core.config import settings
from bookstream.utils.logger import setup_file_logging
from bookstream.api.v1.api import api_router
from bookstream.db.init_db import init_db, create_initial_data
from bookstream.errors.exceptions import EntitlementException
from bookstream.errors.handlers import (
    validation_exception_handler,
    entitlement_exception_handler,
    sqlalchemy_exception_handler,
    general_exception_handler
)

setup_file_logging(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Entitlement and abuse-prevention engine for a digital-book streaming service",
    version=settings.PROJECT_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)


def custom_openapi():
    """Customize OpenAPI schema to use email instead of username in OAuth2"""
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=settings.PROJECT_NAME,
        version=settings.PROJECT_VERSION,
        description="Entitlement and abuse-prevention engine with email-based authentication",
        routes=app.routes,
    )

    login_path = f"{settings.API_V1_STR}/auth/login"
    if login_path in openapi_schema.get("paths", {}):
        if "post" in openapi_schema["paths"][login_path]:
            login_endpoint = openapi_schema["paths"][login_path]["post"]
            login_endpoint["summary"] = "Login with Email"
            login_endpoint["description"] = "Authenticate using **email** and password. Use this endpoint for the Swagger 'Authorize' button."

    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(EntitlementException, entitlement_exception_handler)
app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.on_event("startup")
async def startup_event():
    """Initialize database and log application startup"""
    try:
        init_db()
        create_initial_data()
        logger.warning(f"{settings.PROJECT_NAME} STARTED - Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        logger.warning(f"{settings.PROJECT_NAME} STARTED - Database initialization failed, but API is running")


@app.on_event("shutdown")
async def shutdown_event():
    """Log application shutdown"""
    logger.warning(f"{settings.PROJECT_NAME} SHUTDOWN")
