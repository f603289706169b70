from storefront.schemas.common import ErrorResponse


def error_responses(*status_codes: int) -> dict:
    """``responses=`` entry documenting the JSON error body for each status."""
    return {code: {"model": ErrorResponse} for code in (*status_codes, 500)}
