"""
services/upload/router.py
Admin image upload for blog posts. Files go straight to object storage;
nothing is written to local disk.
"""

import re
import secrets
import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from config.settings import settings
from services.upload.storage import ObjectStorage, get_object_storage
from shared.middleware.auth import TokenData, require_admin
from shared.schemas.schemas import ImageDeleteRequest, MessageResponse
from shared.utils.exceptions import ValidationError

router = APIRouter(prefix="/upload", tags=["Upload"])

# MIME type → stored extension
ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

FOLDER_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
BLOG_ID_RE = re.compile(r"^[A-Za-z0-9-]{1,64}$")


def _invalid(field: str, message: str) -> ValidationError:
    return ValidationError(message, errors=[{"field": field, "message": message}])


def build_object_key(folder: str, blog_id: Optional[str], content_type: str) -> str:
    """<folder>/<blogId|temp>-<epoch ms>-<random>.<ext>"""
    timestamp = int(time.time() * 1000)
    return f"{folder}/{blog_id or 'temp'}-{timestamp}-{secrets.token_hex(4)}.{ALLOWED_IMAGE_TYPES[content_type]}"


@router.post("/blog-image")
async def upload_blog_image(
    file: UploadFile = File(...),
    blog_id: Optional[str] = Form(None, alias="blogId"),
    folder: str = Form("blog-images"),
    _admin: TokenData = Depends(require_admin),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Upload one image (JPEG, PNG, WebP or GIF, 2 MB max) and return its public URL."""
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise _invalid("file", "Invalid file type. Only JPEG, PNG, WebP, and GIF are allowed.")
    if not FOLDER_RE.match(folder):
        raise _invalid("folder", "Invalid folder name")
    if blog_id and not BLOG_ID_RE.match(blog_id):
        raise _invalid("blogId", "Invalid blog id")

    max_bytes = settings.UPLOAD_MAX_BYTES
    # One byte past the limit is enough to reject
    contents = await file.read(max_bytes + 1)
    if not contents:
        raise _invalid("file", "No file uploaded")
    if len(contents) > max_bytes:
        raise _invalid("file", f"File size exceeds {max_bytes // (1024 * 1024)}MB limit")

    key = build_object_key(folder, blog_id, file.content_type)
    url = await storage.put(key, contents, file.content_type)

    return {
        "success": True,
        "message": "Image uploaded successfully",
        "imageUrl": url,
        "fileName": key,
    }


@router.delete("/blog-image", response_model=MessageResponse)
async def delete_blog_image(
    data: ImageDeleteRequest,
    _admin: TokenData = Depends(require_admin),
    storage: ObjectStorage = Depends(get_object_storage),
):
    key = data.file_name.strip()
    if key.startswith("/") or ".." in key:
        raise _invalid("fileName", "Invalid file name")

    await storage.delete(key)
    return MessageResponse(message="Image deleted successfully")
