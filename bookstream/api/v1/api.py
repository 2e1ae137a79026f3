"""API v1 router aggregation"""
from fastapi import APIRouter
from bookstream.api.v1.endpoints import auth_endpoints, subscription_endpoints
from bookstream.api.v1.endpoints import loan_endpoints
from bookstream.api.v1.endpoints import device_endpoints
from bookstream.api.v1.endpoints import admin_endpoints

api_router = APIRouter()

api_router.include_router(auth_endpoints.router,        prefix="/auth",        tags=["Authentication"])
api_router.include_router(subscription_endpoints.router,prefix="/subscription",tags=["Subscription"])
api_router.include_router(loan_endpoints.router,        prefix="/loans",       tags=["Loans"])
api_router.include_router(device_endpoints.router,      prefix="/devices",     tags=["Devices"])
api_router.include_router(admin_endpoints.router,       prefix="/admin",       tags=["Admin"])
