# main.py
from fastapi import FastAPI
import uvicorn

from logger.logger import logger

# Try to import config - if any required configs are missing,
# the app will exit before starting
try:
    import config
except Exception as e:
    logger.critical(f"Failed to load configuration: {e}")
    import sys
    sys.exit(1)

from db.db import init_db, close_db_connection, init_object_storage, ensure_indexes
from routes.routes import setup_routes


# Initialize FastAPI app
app = FastAPI(title="ThunderTalk Chat API")

# Setup routes
setup_routes(app)

# Startup and shutdown events
@app.on_event("startup")
async def startup_db_client():
    logger.info("Starting up application")
    await init_db()
    await ensure_indexes()
    await init_object_storage()

@app.on_event("shutdown")
async def shutdown_db_client():
    logger.info("Shutting down application")
    await close_db_connection()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
