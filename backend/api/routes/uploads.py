# backend/api/routes/uploads.py

import os
import re
import secrets
import time

from fastapi import APIRouter, Depends, File, UploadFile

from core.errors import UploadError
from core.logging import get_logger
from core.state import ChatState, get_state
from models.models import ImageDescriptor, User
from services.auth_service import get_current_user

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Uploads"])


def safe_extension(filename: str) -> str:
    _, ext = os.path.splitext(os.path.basename(filename or ""))
    return ext.lower() if re.fullmatch(r"\.[A-Za-z0-9]{1,8}", ext) else ""


@router.post("/upload")
async def upload_image(
    image: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    chat: ChatState = Depends(get_state),
):
    """
    Store an uploaded image and describe it for a later ``send-message``.

    Only image/* files up to MAX_UPLOAD_BYTES are accepted. Files are
    served back under /uploads/<filename>.
    """
    if not (image.content_type or "").startswith("image/"):
        raise UploadError("Only image files are allowed!")

    limit = chat.settings.MAX_UPLOAD_BYTES
    data = await image.read(limit + 1)
    if len(data) > limit:
        raise UploadError(f"File too large ({limit // (1024 * 1024)}MB max)")
    if not data:
        raise UploadError("No file uploaded")

    filename = f"image-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{safe_extension(image.filename)}"
    os.makedirs(chat.settings.UPLOAD_DIR, exist_ok=True)
    with open(os.path.join(chat.settings.UPLOAD_DIR, filename), "wb") as f:
        f.write(data)

    logger.info("✓ %s uploaded %s (%d bytes)", current_user.id, filename, len(data))
    descriptor = ImageDescriptor(
        filename=filename,
        original_name=image.filename or filename,
        mimetype=image.content_type,
        size=len(data),
        url=f"/uploads/{filename}",
    )
    return descriptor.to_wire()
