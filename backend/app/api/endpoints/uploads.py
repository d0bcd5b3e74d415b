"""
Upload Endpoints

Stores a file and returns its storage metadata. The metadata is then
attached to a case, session or request by the owning endpoint, which is
where visibility rules are enforced.
"""
from botocore.exceptions import ClientError
from fastapi import APIRouter, Depends, File, UploadFile, status

from app.api.deps import get_current_user, get_storage
from app.core.config import settings
from app.core.logger import logger
from app.core.permissions import DOCUMENTS_SELF_CREATE
from app.db.models import User
from app.db.schemas import UploadResponse
from app.services.permission_service import has_permission, is_beneficiary
from app.utils.exceptions import ForbiddenError, UploadFailedError, ValidationFailedError

router = APIRouter()


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def upload_file(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    storage=Depends(get_storage)
):
    if is_beneficiary(current_user) and not has_permission(current_user, DOCUMENTS_SELF_CREATE):
        raise ForbiddenError(f"Missing permission: {DOCUMENTS_SELF_CREATE}")

    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)

    if size == 0:
        raise ValidationFailedError("Empty file")
    if size > settings.MAX_UPLOAD_SIZE:
        raise ValidationFailedError(f"File exceeds the {settings.MAX_UPLOAD_SIZE} byte limit")

    try:
        metadata = storage.upload_fileobj(
            file.file,
            file_name=file.filename or "file",
            content_type=file.content_type or "application/octet-stream",
            size=size,
        )
    except ClientError as e:
        logger.error(f"Upload by {current_user.id} failed: {e}")
        raise UploadFailedError()

    logger.info(f"Upload by {current_user.id}: {metadata['storage_key']}")
    return metadata
