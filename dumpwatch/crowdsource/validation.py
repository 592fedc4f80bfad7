"""
Submission validation for dump reports
Rejects malformed coordinates, sizes and descriptions before any write
"""

import logging
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from dumpwatch.core.constants import (
    LATITUDE_RANGE,
    LONGITUDE_RANGE,
    MAX_DESCRIPTION_LENGTH,
)
from dumpwatch.core.entities import DumpSize
from dumpwatch.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


class ReportSubmission(BaseModel):
    """Validated dump report submission."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    reporter_id: str = Field(..., min_length=1, max_length=64)
    latitude: float = Field(..., ge=LATITUDE_RANGE[0], le=LATITUDE_RANGE[1])
    longitude: float = Field(..., ge=LONGITUDE_RANGE[0], le=LONGITUDE_RANGE[1])
    photo: Union[str, bytes]
    size: DumpSize
    description: Optional[str] = Field(default=None, max_length=MAX_DESCRIPTION_LENGTH)

    @field_validator("size", mode="before")
    @classmethod
    def _normalize_size(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("description")
    @classmethod
    def _blank_description_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


def validate_submission(
    reporter_id: str,
    latitude: float,
    longitude: float,
    photo: Union[str, bytes],
    size: Union[DumpSize, str],
    description: Optional[str] = None
) -> ReportSubmission:
    """
    Validate a dump report submission.

    Args:
        reporter_id: Submitting user
        latitude: Report latitude
        longitude: Report longitude
        photo: Photo payload, checked later by PhotoFraudGuard
        size: SMALL, MEDIUM or LARGE
        description: Optional free text

    Returns:
        ReportSubmission

    Raises:
        ValidationError: if any field is invalid
    """
    try:
        return ReportSubmission(
            reporter_id=reporter_id,
            latitude=latitude,
            longitude=longitude,
            photo=photo,
            size=size,
            description=description,
        )
    except PydanticValidationError as e:
        details = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        logger.info(f"Submission rejected: {details}")
        raise ValidationError("Validation failed", details=details) from e
