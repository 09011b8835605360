from fastapi import FastAPI
from .auth import router as auth_router
from .profiles import router as profiles_router
from .contacts import router as contacts_router
from .messages import router as message_routes
from .realtime import router as realtime_router

def setup_routes(app: FastAPI):
    @app.get("/")
    async def root():
        return {"message": "API is alive!"}

    # Include the router with a prefix
    app.include_router(
        auth_router,
        prefix="/auth",
        tags=["auth"],
    )

    app.include_router(
        profiles_router,
        prefix="/profiles",
        tags=["profiles"],
    )

    app.include_router(
        contacts_router,
        prefix="/contacts",
        tags=["contacts"],
    )

    app.include_router(
        message_routes,
        prefix="/messages",
        tags=["messages"],
    )

    app.include_router(
        realtime_router,
        prefix="/realtime",
        tags=["realtime"],
    )
