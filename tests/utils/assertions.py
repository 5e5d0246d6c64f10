"""Custom assertion helpers."""

import re

from aptrack.models.image_ref import ImageRefKind, decode_ref

KEY_RE = re.compile(r"^[0-9a-z]+-[0-9a-z]{7}\.[a-z0-9]+$")


def assert_valid_image_key(value: str) -> None:
    """Assert a freshly minted object-store reference."""
    ref = decode_ref(value)
    assert ref.kind is ImageRefKind.OBJECT
    assert ref.encoded == ref.key


def assert_generated_key(key: str, extension: str = "png") -> None:
    assert KEY_RE.match(key), key
    assert key.endswith(f".{extension}")
