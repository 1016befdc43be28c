from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

COUNTRY_CODE_PATTERN = r"^[a-zA-Z]{2}$"
MAX_BATCH_SIZE = 100


class TrackVisitRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    country_code: str = Field(alias="countryCode", min_length=2, max_length=2, pattern=COUNTRY_CODE_PATTERN)


class TrackVisitsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    country_codes: List[str] = Field(alias="countryCodes", min_length=1, max_length=MAX_BATCH_SIZE)


class ApiResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Any] = None


class ErrorDetail(BaseModel):
    field: str
    message: str
