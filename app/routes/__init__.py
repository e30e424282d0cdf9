from .auth import router as auth_router
from .scheduler import router as scheduler_router
from .themes import router as themes_router
from .agents import router as agents_router
from .posts import router as posts_router
from .health import router as health_router

__all__ = [
    "auth_router",
    "scheduler_router",
    "themes_router",
    "agents_router",
    "posts_router",
    "health_router",
]
