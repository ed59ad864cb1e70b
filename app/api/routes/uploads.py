from typing import Annotated

from fastapi import APIRouter, File, UploadFile

from app.api.dependencies import ServicesDependency, ViewerDependency
from app.api.schemas import UploadResponse
from app.core.exceptions import Unauthorized

router = APIRouter(tags=["uploads"])


@router.post("/uploads", response_model=UploadResponse)
def create_upload(
    media: Annotated[UploadFile, File()],
    services: ServicesDependency,
    viewer: ViewerDependency,
) -> UploadResponse:
    """Store one media file and charge one token (demo accounts are not charged)."""
    if viewer is None:
        raise Unauthorized()
    mime = media.content_type or ""
    limit = services.uploads.size_limit(mime)
    if media.size is not None:
        services.uploads.validate(mime, media.size)
    # Never buffer more than one byte past the limit; accept() rejects the overflow.
    content = media.file.read(limit + 1)
    accepted = services.uploads.accept(
        viewer,
        filename=media.filename,
        mime=mime,
        content=content,
    )
    return UploadResponse(
        uploadId=accepted.upload.id,
        filename=accepted.upload.filename,
        size=accepted.upload.size,
        mime=accepted.upload.mime,
        remainingTokens=accepted.remaining_tokens,
        charged=accepted.charged,
    )
