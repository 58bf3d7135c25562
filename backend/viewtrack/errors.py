from __future__ import annotations

from typing import Any


class ViewTrackError(Exception):
    """Base class for engine errors."""

    error_type = "VIEWTRACK_ERROR"


class RequestRejectedError(ViewTrackError):
    """Pre-flight failure: the trigger is refused before any work starts."""

    status_code = 500
    error_type = "REQUEST_REJECTED"


class AuthenticationError(RequestRejectedError):
    status_code = 401
    error_type = "AUTHENTICATION_ERROR"


class ScopeNotFoundError(RequestRejectedError):
    status_code = 404

    def __init__(self, kind: str, scope_id: Any):
        self.kind = kind
        self.scope_id = scope_id
        self.error_type = f"{kind.upper()}_NOT_FOUND"
        super().__init__(f"{kind.capitalize()} {scope_id} not found")


class ConfigurationError(RequestRejectedError):
    status_code = 500
    error_type = "CONFIGURATION_ERROR"


class PlatformFetchError(ViewTrackError):
    error_type = "PLATFORM_FETCH_ERROR"

    def __init__(self, platform: str, message: str, *, detail: dict[str, Any] | None = None):
        self.platform = platform
        self.detail = detail or {}
        super().__init__(f"{platform}: {message}")


class ThumbnailError(ViewTrackError):
    error_type = "THUMBNAIL_ERROR"


class ThumbnailDownloadError(ThumbnailError):
    error_type = "THUMBNAIL_DOWNLOAD_ERROR"


class ThumbnailUploadError(ThumbnailError):
    error_type = "THUMBNAIL_UPLOAD_ERROR"


class BatchCommitError(ViewTrackError):
    error_type = "BATCH_COMMIT_ERROR"

    def __init__(self, chunk_index: int, size: int, reason: str):
        self.chunk_index = chunk_index
        self.size = size
        super().__init__(f"chunk {chunk_index} ({size} writes) failed to commit: {reason}")


class AccountBusyError(ViewTrackError):
    error_type = "ACCOUNT_BUSY"
