"""Typed errors raised by the fire listing pipeline and their JSON envelope."""

from typing import Any, Optional

from pydantic import BaseModel


class FirewatchError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class OverLimitError(FirewatchError):
    """Raised when all=true would return more records than allowed."""

    status_code = 400
    code = "over_limit"

    def __init__(self, limit: int, total: int):
        super().__init__(
            f"Request exceeds the limit of {limit} records ({total} found). Refine your filters or use pagination.",
            details={"limit": limit, "total": total},
        )
        self.limit = limit
        self.total = total


class UpstreamFetchFailure(FirewatchError):
    status_code = 502
    code = "upstream_fetch_failed"


class EnrichmentFailure(FirewatchError):
    status_code = 502
    code = "enrichment_failed"


class BoundaryDatasetError(FirewatchError):
    # Never leaves the enrichment chain; it routes records to the reverse geocoder.
    code = "boundary_dataset_invalid"


class ErrorResponse(BaseModel):
    """Standard error response model."""

    code: str
    message: str
    details: Optional[Any] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "code": "over_limit",
                "message": "Request exceeds the limit of 10000 records (12873 found). Refine your filters or use pagination.",
                "details": {"limit": 10000, "total": 12873},
            }
        }
    }


def error_body(exc: FirewatchError) -> dict:
    return ErrorResponse(code=exc.code, message=exc.message, details=exc.details).model_dump()
