"""Tests for Listing model."""

import pytest
from freezegun import freeze_time
from pydantic import ValidationError

from aptrack.models.listing import Listing, ListingStatus, dump_collection, parse_collection
from tests.utils.factories import create_listing_data


@pytest.mark.unit
def test_listing_defaults():
    """Test that only the id is required."""
    listing = Listing(id="1")

    assert listing.status == ListingStatus.NEW
    assert listing.images == []
    assert listing.price == 0
    assert listing.cover_image is None


@pytest.mark.unit
def test_listing_parses_wire_names():
    """Test camelCase document fields map onto the model."""
    listing = Listing.model_validate({
        "id": "1700000000000",
        "createdAt": 1700000000000,
        "reminderDate": "2026-11-01",
        "reminderNote": "call landlord",
        "entryMonth": "2026-12",
        "status": "נקבע סיור",
        "images": ["b.png", "a.png"],
    })

    assert listing.created_at == 1700000000000
    assert listing.reminder_date == "2026-11-01"
    assert listing.entry_month == "2026-12"
    assert listing.status is ListingStatus.VIEWING_SCHEDULED
    assert listing.cover_image == "b.png"


@pytest.mark.unit
def test_listing_to_document_uses_wire_names():
    """Test serialization uses camelCase names and drops unset fields."""
    listing = Listing(id="1", created_at=5, entry_month="2026-12")

    doc = listing.to_document()

    assert doc["createdAt"] == 5
    assert doc["entryMonth"] == "2026-12"
    assert doc["status"] == "חדש"
    assert "reminderDate" not in doc


@pytest.mark.unit
def test_listing_preserves_unknown_fields():
    """Test fields written by other clients survive a round trip."""
    listing = Listing.model_validate({"id": "1", "elevator": True, "parking": False})

    doc = listing.to_document()

    assert doc["elevator"] is True
    assert doc["parking"] is False


@pytest.mark.unit
def test_listing_splits_legacy_address():
    """Test a single-line address is split into street and city."""
    listing = Listing.model_validate({"id": "1", "address": "Herzl 12, Tel Aviv"})

    assert listing.street == "Herzl 12"
    assert listing.city == "Tel Aviv"


@pytest.mark.unit
def test_listing_keeps_street_when_present():
    """Test the legacy address is ignored once street is set."""
    listing = Listing.model_validate({"id": "1", "address": "Old, Place", "street": "New 1"})

    assert listing.street == "New 1"
    assert listing.city == ""


@pytest.mark.unit
@pytest.mark.parametrize("field,value", [("price", -1), ("rating", 0), ("rating", 11), ("id", "")])
def test_listing_rejects_invalid_values(field, value):
    """Test out-of-range values fail validation."""
    data = {"id": "1", field: value}
    with pytest.raises(ValidationError):
        Listing.model_validate(data)


@pytest.mark.unit
def test_listing_new_mints_id_from_clock():
    """Test new listings take their id from the creation time."""
    listing = Listing.new(title="Rothschild")

    assert listing.id == str(listing.created_at)
    assert listing.status is ListingStatus.NEW


@pytest.mark.unit
def test_parse_collection_skips_invalid_records():
    """Test invalid records are left out of the parsed collection."""
    raw = [create_listing_data("1"), {"title": "no id"}, "garbage", create_listing_data("2")]

    listings = parse_collection(raw)

    assert [item.id for item in listings] == ["1", "2"]


@pytest.mark.unit
def test_parse_collection_rejects_non_list():
    """Test non-list documents parse as empty."""
    assert parse_collection({"id": "1"}) == []
    assert parse_collection(None) == []


@pytest.mark.unit
def test_collection_round_trip():
    """Test a dumped collection parses back to the same listings."""
    raw = [create_listing_data("1", ["a.png", "idb-1"]), create_listing_data("2")]

    listings = parse_collection(raw)

    assert parse_collection(dump_collection(listings)) == listings


@pytest.mark.unit
@freeze_time("2024-12-09 12:00:00")
def test_listing_created_at_defaults_to_now():
    """Test the creation time defaults to now."""
    assert Listing(id="1").created_at == 1733745600000
