# dependencies/db.py
from fastapi import Depends
from typing import Annotated

async def get_db():
    """
    Dependency for database access.
    Returns the MongoDB database holding profiles and messages.
    """
    from db.db import get_db as db_connection
    return await db_connection()

async def get_object_storage():
    """
    Dependency for object storage access.
    Returns the MinIO client used for chat attachments.
    """
    from db.db import get_object_storage as object_storage
    return await object_storage()

# Annotated dependencies for use in route and dependency signatures
DB = Annotated[object, Depends(get_db)]
ObjectStorage = Annotated[object, Depends(get_object_storage)]
