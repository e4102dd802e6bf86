from fastapi import FastAPI

from .admin import router as admin_router
from .auth import router as auth_router
from .organizer import router as organizer_router
from .review import router as review_router
from .user import router as user_router


def include_routers(app: FastAPI) -> None:
    app.include_router(auth_router, tags=["auth"])
    app.include_router(admin_router, tags=["admin"])
    app.include_router(user_router, tags=["matches"])
    app.include_router(organizer_router, tags=["organizer"])
    app.include_router(review_router, tags=["reviews"])
