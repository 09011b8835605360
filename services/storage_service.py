# services/storage_service.py
from typing import Optional, Tuple
from fastapi import HTTPException, status
from minio import Minio
from PIL import Image, UnidentifiedImageError
import io
import os
import uuid

from config import settings
from models.enums import AttachmentKind
from models.message_model import AttachmentResponse
from logger.logger import logger

# Attachments are stored under one folder per kind, e.g. images/ and files/
DEFAULT_CONTENT_TYPES = {
    AttachmentKind.IMAGE: "image/jpeg",
    AttachmentKind.FILE: "application/octet-stream",
}

def process_image(image_data: bytes, max_size: Tuple[int, int] = (1920, 1080), quality: int = 85) -> Tuple[bytes, str]:
    """
    Normalise an image attachment to a bounded-size JPEG

    Args:
        image_data: Raw image data in bytes
        max_size: Maximum dimensions (width, height)
        quality: Compression quality (1-100)

    Returns:
        Tuple of (processed_image_bytes, content_type)
    """
    try:
        image = Image.open(io.BytesIO(image_data))
        logger.debug(f"Processing image of size {image.size}, mode {image.mode}")

        # Flatten transparency onto white, JPEG has no alpha channel
        if image.mode in ('RGBA', 'LA'):
            background = Image.new('RGB', image.size, (255, 255, 255))
            background.paste(image, mask=image.split()[-1])
            image = background
        elif image.mode != 'RGB':
            image = image.convert('RGB')

        # Resize if larger than max_size while maintaining aspect ratio
        if image.size[0] > max_size[0] or image.size[1] > max_size[1]:
            image.thumbnail(max_size, Image.Resampling.LANCZOS)

        output = io.BytesIO()
        image.save(output, format='JPEG', quality=quality, optimize=True)
        return output.getvalue(), 'image/jpeg'

    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Rejecting unreadable image attachment: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded image could not be read"
        )

def build_object_name(kind: AttachmentKind, filename: str, file_id: Optional[str] = None) -> str:
    """Object key for an attachment: <kind>s/<unique id>.<extension>"""
    file_id = file_id or uuid.uuid4().hex
    extension = os.path.splitext(filename or "")[1].lstrip('.').lower()
    if not extension:
        extension = "jpg" if kind == AttachmentKind.IMAGE else "bin"
    return f"{kind.value}s/{file_id}.{extension}"

def public_url(object_name: str, bucket_name: Optional[str] = None, base_url: Optional[str] = None) -> str:
    """Public link to an object in a publicly readable bucket"""
    bucket_name = bucket_name or settings.MINIO_BUCKET
    base_url = (base_url if base_url is not None else settings.MINIO_PUBLIC_URL).rstrip('/')
    return f"{base_url}/{bucket_name}/{object_name}"

def upload_attachment(
    data: bytes,
    filename: str,
    kind: AttachmentKind,
    minio_client: Minio,
    content_type: Optional[str] = None
) -> AttachmentResponse:
    """
    Upload a chat attachment to MinIO

    Args:
        data: The file content as bytes
        filename: Original filename
        kind: image or file
        minio_client: MinIO client instance
        content_type: MIME type reported by the client, if any

    Returns:
        AttachmentResponse with the public URL to record on the message
    """
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty")
    if len(data) > settings.MAX_ATTACHMENT_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Attachments are limited to {settings.MAX_ATTACHMENT_BYTES} bytes"
        )

    content_type = content_type or DEFAULT_CONTENT_TYPES[kind]
    if kind == AttachmentKind.IMAGE:
        data, content_type = process_image(data)
        filename = os.path.splitext(filename or "image")[0] + '.jpg'

    object_name = build_object_name(kind, filename)
    try:
        minio_client.put_object(
            bucket_name=settings.MINIO_BUCKET,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type
        )
    except Exception as e:
        logger.error(f"Error uploading attachment {object_name}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to upload file: {str(e)}"
        )

    logger.info(f"Uploaded attachment {object_name} ({len(data)} bytes)")
    return AttachmentResponse(
        file_url=public_url(object_name),
        file_type=content_type,
        object_name=object_name,
        size=len(data)
    )
