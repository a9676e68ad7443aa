import logging
import time
from typing import Annotated

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import RedirectResponse
from starlette import status

from storefront.auth import CurrentUserDep, has_permission, is_staff
from storefront.database import DbSessionDep
from storefront.models.content import Image
from storefront.models.user import User
from storefront.settings import get_settings

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif", "image/bmp",
    "image/svg+xml", "image/tiff", "image/avif", "image/heic", "image/heif",
}

# iOS Photos may send an empty or generic content type
MIME_TYPES_BY_EXTENSION = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
    "tiff": "image/tiff",
    "tif": "image/tiff",
    "avif": "image/avif",
    "heic": "image/heic",
    "heif": "image/heif",
}

PRESIGNED_URL_EXPIRATION = 3600

router = APIRouter(
    prefix="/api",
    tags=["uploads"],
    responses={404: {"description": "Not found"}},
)

def get_s3_client():
    """Get configured S3 client"""
    settings = get_settings()
    if not settings.s3_bucket_name:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Image storage is not configured"
        )
    return boto3.client(
        's3',
        endpoint_url=settings.s3_endpoint_url,
        aws_access_key_id=settings.s3_access_key,
        aws_secret_access_key=settings.s3_secret_key,
        region_name=settings.s3_region_name
    )

S3ClientDep = Annotated[object, Depends(get_s3_client)]

class UploaderChecker:
    """Staff holding products.create or customization.edit"""
    def __call__(self, session: DbSessionDep, current_user: CurrentUserDep) -> User:
        allowed = is_staff(current_user) and (
            has_permission(session, current_user, "products", "create")
            or has_permission(session, current_user, "customization", "edit")
        )
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permission denied: products.create"
            )
        return current_user

def resolve_mime_type(filename: str, content_type: str | None) -> tuple[str, bool]:
    """Return the effective MIME type and whether the file is an accepted image"""
    extension = filename.lower().rsplit(".", 1)[-1] if "." in filename else ""
    mime_type = content_type or ""
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = MIME_TYPES_BY_EXTENSION.get(extension, "image/jpeg")
    accepted = extension in MIME_TYPES_BY_EXTENSION or mime_type in ALLOWED_MIME_TYPES
    return mime_type, accepted

@router.post("/upload", dependencies=[Depends(UploaderChecker())])
def upload_image(session: DbSessionDep, s3_client: S3ClientDep, file: Annotated[UploadFile, File()]):
    """Store an image in the bucket and return its public URL"""
    settings = get_settings()
    filename = file.filename or ""
    if not filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file provided"
        )

    mime_type, accepted = resolve_mime_type(filename, file.content_type)
    if not accepted:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Only images are allowed"
        )

    data = file.file.read(settings.upload_max_bytes + 1)
    if len(data) > settings.upload_max_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum size is {settings.upload_max_bytes // (1024 * 1024)}MB"
        )

    stored_name = f"{int(time.time() * 1000)}-{'-'.join(filename.split())}"
    storage_key = f"images/{stored_name}"
    try:
        s3_client.put_object(
            Bucket=settings.s3_bucket_name,
            Key=storage_key,
            Body=data,
            ContentType=mime_type
        )
    except (ClientError, BotoCoreError) as e:
        logger.error("Failed to store %s in S3: %s", storage_key, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to upload file"
        )

    image = Image(filename=stored_name, mime_type=mime_type, size=len(data), storage_key=storage_key)
    session.add(image)
    session.commit()
    session.refresh(image)
    return {
        "success": True,
        "url": f"/api/images/{image.id}",
        "id": image.id,
        "filename": stored_name,
    }

@router.get("/images/{image_id}")
def get_image(session: DbSessionDep, image_id: int, s3_client: S3ClientDep):
    """Redirect to a short-lived download URL for the stored image"""
    image = session.get(Image, image_id)
    if not image:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Image not found"
        )

    settings = get_settings()
    try:
        url = s3_client.generate_presigned_url(
            'get_object',
            Params={
                'Bucket': settings.s3_bucket_name,
                'Key': image.storage_key
            },
            ExpiresIn=PRESIGNED_URL_EXPIRATION
        )
    except ClientError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate download URL: {str(e)}"
        )
    return RedirectResponse(url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
