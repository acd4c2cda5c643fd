"""Pagination bounds shared by list operations."""

from gateway.app.errors import ValidationError

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


def check_page(limit: int, offset: int) -> None:
    """Reject out-of-range pagination parameters."""
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(
            f"limit must be between 1 and {MAX_LIMIT}", details={"limit": limit}
        )
    if offset < 0:
        raise ValidationError("offset must be non-negative", details={"offset": offset})
