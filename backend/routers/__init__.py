from .auth import router as auth_router
from .login import router as login_router
from .pages import router as pages_router
from .settings import router as settings_router
from .sites import router as sites_router

__all__ = [
    "auth_router",
    "login_router",
    "pages_router",
    "settings_router",
    "sites_router",
]
