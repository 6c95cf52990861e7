"""
Clipture Backend — API v1 Routes
==================================

What:  The versioned API surface under /api/v1.

Route Inventory:
    GET  /api/v1/                 service information
    GET  /api/v1/health           liveness (shared with /health)
    GET  /api/v1/db-health        database status (shared with /db-health)
    POST /api/v1/auth/register    placeholder
    POST /api/v1/auth/login       placeholder
    GET  /api/v1/profile          placeholder (will require auth)

The auth and profile handlers only answer "to be implemented" until the
auth module lands.
"""

from fastapi import APIRouter

from app.routes import health
from app.routes.root import service_info
from app.schemas.envelope import respond_ok

router = APIRouter(prefix="/api/v1")


@router.get("/", tags=["Info"], summary="API v1 information")
async def api_root():
    return respond_ok(service_info({
        "health": "/api/v1/health",
        "db_health": "/api/v1/db-health",
    }))


router.include_router(health.router)


# ── Auth (placeholders) ───────────────────────────────────────────────────
auth_router = APIRouter(prefix="/auth", tags=["Auth"])


@auth_router.post("/register", summary="Register a new account (not implemented)")
async def register():
    return respond_ok({"message": "Registration endpoint - to be implemented"})


@auth_router.post("/login", summary="Log in (not implemented)")
async def login():
    return respond_ok({"message": "Login endpoint - to be implemented"})


router.include_router(auth_router)


# ── Protected (placeholders, no auth dependency yet) ──────────────────────
@router.get("/profile", tags=["Users"], summary="Current user profile (not implemented)")
async def profile():
    return respond_ok({"message": "Profile endpoint - to be implemented"})
