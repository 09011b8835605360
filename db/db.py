from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from config import (
    DATABASE_URL,
    DATABASE_NAME,
    DB_MAX_POOL_SIZE,
    DB_MAX_RECONNECT_ATTEMPTS,
    DB_RECONNECT_DELAY,
    DB_SERVER_SELECTION_TIMEOUT_MS,
    DB_CONNECT_TIMEOUT_MS
)
from logger.logger import logger

import asyncio
import json
from typing import Any, Dict, Optional

from minio import Minio
from config import MINIO_USERNAME, MINIO_PASSWORD, MINIO_SERVER, MINIO_BUCKET

# Global client with connection pool
client: Optional[AsyncIOMotorClient] = None
db = None
minio_client = None

async def init_db():
    """Initialize database connection with retries"""
    global client, db

    for attempt in range(DB_MAX_RECONNECT_ATTEMPTS):
        try:
            if client is None:
                # Create client with connection pool
                client = AsyncIOMotorClient(
                    DATABASE_URL,
                    maxPoolSize=DB_MAX_POOL_SIZE,
                    serverSelectionTimeoutMS=DB_SERVER_SELECTION_TIMEOUT_MS,
                    connectTimeoutMS=DB_CONNECT_TIMEOUT_MS,
                    retryWrites=True,
                    retryReads=True,
                    tz_aware=True
                )
                db = client[DATABASE_NAME]

            # Test connection
            await client.admin.command('ping')
            logger.info("Successfully connected to MongoDB")
            return
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB (attempt {attempt+1}/{DB_MAX_RECONNECT_ATTEMPTS}): {e}")
            if attempt < DB_MAX_RECONNECT_ATTEMPTS - 1:
                await asyncio.sleep(DB_RECONNECT_DELAY)
            else:
                logger.error("Max reconnection attempts reached. Running with degraded database functionality.")

async def ensure_indexes():
    """Create the indexes the chat queries rely on"""
    if db is None:
        logger.warning("Skipping index creation, database is not initialized")
        return

    # Participation queries are always ordered newest first
    await db.messages.create_index([("sender_id", ASCENDING), ("created_at", DESCENDING)])
    await db.messages.create_index([("receiver_id", ASCENDING), ("created_at", DESCENDING)])
    await db.messages.create_index([("receiver_id", ASCENDING), ("is_read", ASCENDING)])

    await db.profiles.create_index("email", unique=True, sparse=True)
    await db.profiles.create_index("phone_number", unique=True, sparse=True)
    logger.info("MongoDB indexes ensured")

async def get_db():
    """
    Dependency function to get database connection.
    For use with FastAPI Depends().
    """
    if client is None:
        # Try to initialize if not already connected
        await init_db()

    if db is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database service unavailable"
        )

    try:
        # Check if connection is alive before returning
        await client.admin.command('ping')
        return db
    except Exception as e:
        logger.error(f"Database connection error: {e}")
        # Try to reconnect
        await init_db()

        if db is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Database service unavailable"
            )
        return db

async def close_db_connection():
    """Close database connection"""
    global client, db
    if client:
        client.close()
        client = None
        db = None
        logger.info("DB connection closed")

def public_read_policy(bucket_name: str) -> Dict[str, Any]:
    """Anonymous read-only bucket policy"""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"AWS": ["*"]},
                "Action": ["s3:GetObject"],
                "Resource": [f"arn:aws:s3:::{bucket_name}/*"],
            }
        ],
    }

async def init_object_storage(secure=False):
    """Initialize object storage connection"""
    global minio_client

    # Remove the http:// or https:// prefix from the server address
    server_address = MINIO_SERVER
    if server_address.startswith("http://"):
        server_address = server_address[7:]
        secure = False
    elif server_address.startswith("https://"):
        server_address = server_address[8:]
        secure = True

    minio_client = Minio(
        server_address,
        access_key=MINIO_USERNAME,
        secret_key=MINIO_PASSWORD,
        secure=secure
    )

    # Create the chat files bucket if it doesn't exist
    if not minio_client.bucket_exists(MINIO_BUCKET):
        minio_client.make_bucket(MINIO_BUCKET)
        # Attachment URLs are handed out as plain public links
        minio_client.set_bucket_policy(MINIO_BUCKET, json.dumps(public_read_policy(MINIO_BUCKET)))
        logger.info(f"Bucket '{MINIO_BUCKET}' created")
    else:
        logger.info(f"Bucket '{MINIO_BUCKET}' already exists")

async def get_object_storage():
    """
    Dependency function to get object storage connection.
    For use with FastAPI Depends().
    """
    if minio_client is None:
        # Try to initialize if not already connected
        await init_object_storage()

    if minio_client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Object storage service unavailable"
        )

    return minio_client
