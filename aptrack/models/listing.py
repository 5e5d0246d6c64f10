"""Listing models."""

import logging
import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


class ListingStatus(str, Enum):
    """Listing status. Values are the labels stored in existing documents."""
    NEW = "חדש"
    CONTACTED = "בוצעה שיחה"
    VIEWING_SCHEDULED = "נקבע סיור"
    VISITED = "ביקרתי"
    REJECTED = "לא רלוונטי"
    FAVORITE = "מועדף ⭐"


def now_millis() -> int:
    return int(time.time() * 1000)


class Listing(BaseModel):
    """A tracked apartment."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1, description="Listing ID (text, immutable)")
    title: str = Field(default="", description="Display title")
    street: str = Field(default="", description="Street address")
    city: str = Field(default="", description="Locality")
    address: Optional[str] = Field(None, description="Legacy single-line address")
    lat: Optional[float] = None
    lon: Optional[float] = None
    price: int = Field(default=0, ge=0, description="Price, currency-agnostic")
    rooms: str = Field(default="", description="Room count, free-form (e.g. 3.5)")
    phone: str = ""
    link: str = ""
    status: ListingStatus = ListingStatus.NEW
    created_at: int = Field(default_factory=now_millis, alias="createdAt")
    images: list[str] = Field(default_factory=list, description="Image references, first is the cover")
    floor: Optional[int] = None
    amenities: dict[str, bool] = Field(default_factory=dict, description="Boolean amenity flags")
    rating: Optional[int] = Field(None, ge=1, le=10)
    notes: Optional[str] = None
    reminder_date: Optional[str] = Field(None, alias="reminderDate")
    reminder_note: Optional[str] = Field(None, alias="reminderNote")
    entry_month: Optional[str] = Field(None, alias="entryMonth")

    @model_validator(mode="before")
    @classmethod
    def _split_legacy_address(cls, data: Any) -> Any:
        # Old records only carry "address"; split "street, city" on the first comma.
        if isinstance(data, dict) and data.get("address") and not data.get("street") and not data.get("city"):
            parts = [p.strip() for p in str(data["address"]).split(",", 1)]
            data = dict(data)
            data["street"] = parts[0] if parts else ""
            data["city"] = parts[1] if len(parts) > 1 else ""
        return data

    @classmethod
    def new(cls, **fields: Any) -> "Listing":
        """Create a listing with a freshly minted id."""
        created = now_millis()
        fields.setdefault("id", str(created))
        fields.setdefault("createdAt", created)
        return cls(**fields)

    @property
    def cover_image(self) -> Optional[str]:
        return self.images[0] if self.images else None

    def to_document(self) -> dict:
        """Serialize with the wire (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def split_collection(raw: Any) -> tuple[list[Listing], list[Any]]:
    """Split a stored collection into parsed listings and records that failed validation.

    Rejected records are returned untouched so they can be written back as-is.
    """
    if not isinstance(raw, list):
        return [], []

    listings: list[Listing] = []
    rejected: list[Any] = []
    for item in raw:
        try:
            listings.append(Listing.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "Keeping invalid listing record unparsed",
                extra={"record_id": item.get("id") if isinstance(item, dict) else None, "error": str(e)}
            )
            rejected.append(item)
    return listings, rejected


def parse_collection(raw: Any) -> list[Listing]:
    """Parse a stored collection, skipping records that fail validation."""
    return split_collection(raw)[0]


def dump_collection(listings: list[Listing]) -> list[dict]:
    return [listing.to_document() for listing in listings]
