"""Error taxonomy surfaced by the hub; each error carries a stable code and an HTTP status."""

from feedhub.protocol import (
    ERROR_BAD_REQUEST,
    ERROR_NOT_FOUND,
    ERROR_STORE_UNAVAILABLE,
    ERROR_PERSIST_FAILURE,
    ERROR_PUSH_UNAVAILABLE,
    ERROR_UPSTREAM_UNAVAILABLE,
    ERROR_UNAUTHORIZED,
)


class FeedHubError(Exception):
    """Base class for errors with a taxonomy code."""

    code = "INTERNAL"
    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(FeedHubError):
    """A required field is missing or malformed; nothing was attempted."""

    code = ERROR_BAD_REQUEST
    status = 400


class NotFoundError(FeedHubError):
    code = ERROR_NOT_FOUND
    status = 404


class StoreUnavailable(FeedHubError):
    """The content, notification or subscription store could not be reached in time."""

    code = ERROR_STORE_UNAVAILABLE
    status = 503


class PersistFailure(StoreUnavailable):
    """Publish aborted before any notification was written because the post was not saved."""

    code = ERROR_PERSIST_FAILURE


class PushUnavailable(FeedHubError):
    """Delivery to one session failed; never surfaced to the publisher."""

    code = ERROR_PUSH_UNAVAILABLE
    status = 503


class UpstreamUnavailable(FeedHubError):
    code = ERROR_UPSTREAM_UNAVAILABLE
    status = 502


class Unauthorized(FeedHubError):
    code = ERROR_UNAUTHORIZED
    status = 401


def require_text(value, name: str) -> str:
    """Strip value; raise ValidationError if nothing is left."""
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{name} is required")
    return value
