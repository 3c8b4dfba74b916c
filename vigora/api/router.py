# vigora/api/router.py
from fastapi import APIRouter

from .endpoints import health, users, auth, qr

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])

# current user
api_router.include_router(users.router, prefix="/users", tags=["users"])

# login / register / refresh / logout
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])

# QR code login
api_router.include_router(qr.router, prefix="/auth/qr", tags=["qr"])
