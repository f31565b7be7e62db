from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_serializer, field_validator


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a trailing Z. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def name_key(name: str) -> str:
    """Lookup key for a country name; Unicode-aware, unlike SQL lower()."""
    return name.strip().casefold()


class CountryDraft(BaseModel):
    """A country as reconciled from the upstream payloads, before validation."""
    name: Optional[str] = None
    capital: Optional[str] = None
    region: Optional[str] = None
    population: Optional[int] = None
    currency_code: Optional[str] = None
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None
    last_refreshed_at: datetime


class CountryRecord(BaseModel):
    # name, population and currency_code are required for a row to be stored
    name: str = Field(..., min_length=1, examples=["Nigeria"])
    capital: Optional[str] = Field(None, examples=["Abuja"])
    region: Optional[str] = Field(None, examples=["Africa"])
    population: int = Field(..., ge=0, examples=[206139589])
    currency_code: str = Field(..., min_length=1, examples=["NGN"])
    exchange_rate: Optional[float] = Field(None, gt=0, examples=[1600.23])
    estimated_gdp: Optional[float] = Field(None, examples=[25767448125.2])
    flag_url: Optional[str] = Field(None, examples=["https://flagcdn.com/ng.svg"])
    last_refreshed_at: datetime

    @field_validator("name", "population", "currency_code", mode="before")
    @classmethod
    def validate_required_fields(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} is required")
        return value


class CountryResponse(BaseModel):
    id: int
    name: str
    capital: Optional[str] = None
    region: Optional[str] = None
    population: int
    currency_code: str
    exchange_rate: Optional[float] = None
    estimated_gdp: Optional[float] = None
    flag_url: Optional[str] = None
    last_refreshed_at: datetime
    model_config = {"from_attributes": True}

    @field_serializer("last_refreshed_at")
    def serialize_last_refreshed_at(self, value: datetime) -> str:
        return format_timestamp(value)


class RefreshResponse(BaseModel):
    message: str = "Countries refreshed successfully"
    total_countries: int
    last_refreshed_at: str


class StatusResponse(BaseModel):
    total_countries: int
    last_refreshed_at: str


class DeleteResponse(BaseModel):
    message: str = "Country successfully deleted"
    deletedCount: int
