"""Error kinds surfaced by the upload pipeline.

Every error carries a machine-readable ``kind``, the HTTP status the API
maps it to, and a message that is safe to show to the end user.
"""


class ImageError(Exception):
    kind = "internal_error"
    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.kind, "message": self.message}


class BadRequest(ImageError):
    kind = "invalid_request"
    status_code = 400
    default_message = "Invalid request"


class TooLarge(ImageError):
    kind = "too_large"
    status_code = 413
    default_message = "Image is too large"

    def __init__(self, size=None, limit=None):
        message = None
        if limit:
            message = f"Image must be less than {limit // (1024 * 1024) or 1}MB"
        super().__init__(message)
        self.size = size
        self.limit = limit


class UnsupportedType(ImageError):
    kind = "unsupported_type"
    status_code = 415
    default_message = "Only JPEG and PNG images are allowed"


class ModerationOutcome(ImageError):
    """A non-approval decision. Not a failure of the pipeline."""

    status = None

    def __init__(self, reason=None):
        super().__init__(reason)
        self.reason = self.message

    def to_dict(self):
        data = super().to_dict()
        data["status"] = self.status
        data["reason"] = self.reason
        return data


class Rejected(ModerationOutcome):
    kind = "not_approved"
    status = "REJECTED"
    status_code = 422
    default_message = "Image is not approved"


class PendingReview(ModerationOutcome):
    kind = "not_approved"
    status = "PENDING_REVIEW"
    status_code = 503
    default_message = "Unable to verify right now"


class TokenInvalidOrExpired(ImageError):
    kind = "invalid_upload_token"
    status_code = 422
    default_message = "Image approval token expired or missing"


class EntityNotFound(ImageError):
    kind = "not_found"
    status_code = 404
    default_message = "Entity not found"


class Forbidden(ImageError):
    kind = "forbidden"
    status_code = 403
    default_message = "You may not change this image"


class InternalFailure(ImageError):
    kind = "internal_error"
    status_code = 500
    default_message = "Failed to store image"


# Store-level errors, translated by the coordinator.


class PendingUploadNotFound(Exception):
    """Token unknown, expired, consumed, or owned by someone else."""


class UploadNotApproved(Exception):
    """A pending upload whose stored decision is not APPROVED."""


class AssetNotFound(Exception):
    pass
