"""API route aggregation.

All routers registered here get mounted in main.py.

Auth is applied at the include_router level using FastAPI's
dependencies parameter, so individual handlers only ask for the
identity when they need it. Health and auth routers are open; admin
routers additionally require the admin role.
"""

from fastapi import APIRouter, Depends

from supportdesk.api.admin import router as admin_router
from supportdesk.api.auth import router as auth_router
from supportdesk.api.chat import router as chat_router
from supportdesk.api.health import router as health_router
from supportdesk.auth.dependencies import get_current_user, require_admin

_auth = [Depends(get_current_user)]
_admin = [Depends(require_admin)]

api_router = APIRouter(prefix="/api/v1")

# Open routes, no auth required
api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])

# Protected routes
api_router.include_router(chat_router, tags=["chat"], dependencies=_auth)
api_router.include_router(admin_router, tags=["admin"], dependencies=_admin)
