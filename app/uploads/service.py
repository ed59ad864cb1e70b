from dataclasses import dataclass

from app.config.settings import Settings
from app.core.exceptions import InsufficientTokens, InvalidRequest, Unauthorized
from app.core.identity import Viewer
from app.database.models import UploadRecord
from app.database.repositories.upload_repository import UploadRepository
from app.logging.logger import Log
from app.tokens.accounting import TokenAccounting

IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"})
VIDEO_TYPES = frozenset({"video/mp4", "video/quicktime", "video/webm"})

UPLOAD_TOKEN_COST = 1


@dataclass(frozen=True)
class AcceptedUpload:
    upload: UploadRecord
    remaining_tokens: int | None
    charged: bool


class UploadService:
    """Accepts one media file per call and charges one token unless the user is a demo account.

    Validation happens before anything is stored. The upload is only marked as
    token-charged after the deduction succeeded; any failure after the row was
    created deletes it again and refunds a token already taken.
    """

    def __init__(
        self,
        *,
        upload_repo: UploadRepository,
        tokens: TokenAccounting,
        max_image_bytes: int,
        max_video_bytes: int,
    ) -> None:
        self._upload_repo = upload_repo
        self._tokens = tokens
        self._max_image_bytes = max_image_bytes
        self._max_video_bytes = max_video_bytes

    @classmethod
    def from_settings(
        cls, settings: Settings, upload_repo: UploadRepository, tokens: TokenAccounting
    ) -> "UploadService":
        return cls(
            upload_repo=upload_repo,
            tokens=tokens,
            max_image_bytes=settings.max_image_bytes,
            max_video_bytes=settings.max_video_bytes,
        )

    def size_limit(self, mime: str) -> int:
        """Raises:
            InvalidRequest: for a type outside the image and video allow-lists.
        """
        if mime in IMAGE_TYPES:
            return self._max_image_bytes
        if mime in VIDEO_TYPES:
            return self._max_video_bytes
        allowed = ", ".join(sorted(IMAGE_TYPES | VIDEO_TYPES))
        raise InvalidRequest(f"Invalid file type. Allowed types: {allowed}")

    def validate(self, mime: str, size: int) -> None:
        """Raises:
            InvalidRequest: for a non-allow-listed type, an empty file or an oversized file.
        """
        limit = self.size_limit(mime)
        if size <= 0:
            raise InvalidRequest("No file provided")
        if size > limit:
            raise InvalidRequest(
                f"File too large. Maximum size is {limit // (1024 * 1024)}MB"
            )

    def accept(
        self,
        viewer: Viewer | None,
        *,
        filename: str | None,
        mime: str,
        content: bytes,
    ) -> AcceptedUpload:
        if viewer is None:
            raise Unauthorized()
        if not viewer.email:
            raise InvalidRequest("User email not found")
        self.validate(mime, len(content))

        user = self._tokens.get_or_create_user(viewer.email)
        upload = self._upload_repo.create_upload(
            filename or "upload", len(content), mime, {"ownerId": user.id}
        )
        if self._tokens.is_demo_account(viewer.email):
            try:
                self._upload_repo.set_upload_data(upload.id, content)
            except Exception:
                self._upload_repo.delete_upload(upload.id)
                raise
            Log.info(f"Stored upload {upload.id} ({mime}, {len(content)} bytes) for demo user {user.id}")
            return AcceptedUpload(upload=upload, remaining_tokens=user.tokens, charged=False)

        deducted = False
        try:
            self._upload_repo.set_upload_data(upload.id, content)
            deduction = self._tokens.deduct(user.id, UPLOAD_TOKEN_COST)
            if deduction.success:
                deducted = True
                self._upload_repo.merge_upload_metadata(upload.id, {"tokenChargedUserId": user.id})
        except Exception:
            Log.error(f"Upload {upload.id} for user {user.id} failed; removing it")
            self._upload_repo.delete_upload(upload.id)
            if deducted:
                self._tokens.credit(user.id, UPLOAD_TOKEN_COST)
            raise

        if not deduction.success:
            self._upload_repo.delete_upload(upload.id)
            Log.warning(f"Upload {upload.id} removed: user {user.id} has insufficient tokens")
            raise InsufficientTokens(
                current=self._tokens.balance(user.id), required=UPLOAD_TOKEN_COST
            )
        Log.info(f"Stored upload {upload.id} ({mime}, {len(content)} bytes) for user {user.id}")
        return AcceptedUpload(
            upload=upload, remaining_tokens=deduction.remaining_tokens, charged=True
        )
