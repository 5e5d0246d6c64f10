"""Image reference codec.

An image reference is persisted as a plain string inside ``Listing.images``.
The string encodes which storage backend holds the bytes:

* ``data:<mime>;base64,...``   inline payload, only present while editing
* ``cloud://<key>``            object store key, always served from the public URL
* ``file://<key>``             legacy key held by the bridge's local file store
* ``idb-...``                  legacy key held in the browser-local blob store
* ``<key>``                    object store key (the default durable form)

Older clients also wrapped keys as ``idb://<key>``; the wrapper is unwrapped
on decode and kept verbatim on encode.

Only this module looks at prefixes. Everything else works with ``ImageRef``.
"""

import base64
import binascii
import re
import secrets
import string
import time
from dataclasses import dataclass
from enum import Enum

from aptrack.utils.errors import InvalidDataUrlError, InvalidImageRefError


INLINE_PREFIX = "data:"
CLOUD_PREFIX = "cloud://"
FILE_PREFIX = "file://"
WRAPPED_PREFIX = "idb://"
BROWSER_LOCAL_PREFIX = "idb-"

_BASE36 = string.digits + string.ascii_lowercase
_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)


class ImageRefKind(str, Enum):
    """Storage backend an image reference points into."""
    INLINE = "inline"
    OBJECT = "object"
    OBJECT_EXPLICIT = "object_explicit"
    LOCAL_FILE = "local_file"
    BROWSER_LOCAL = "browser_local"


@dataclass(frozen=True)
class ImageRef:
    kind: ImageRefKind
    key: str
    encoded: str

    @classmethod
    def object(cls, key: str) -> "ImageRef":
        return cls(ImageRefKind.OBJECT, key, key)

    @property
    def is_inline(self) -> bool:
        return self.kind is ImageRefKind.INLINE

    @property
    def is_durable(self) -> bool:
        return self.kind is not ImageRefKind.INLINE

    def __str__(self) -> str:
        return self.encoded


def decode_ref(value: str) -> ImageRef:
    """Decode a stored reference string, most specific form first."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidImageRefError(f"Invalid image reference: {value!r}")

    if value.startswith(INLINE_PREFIX):
        return ImageRef(ImageRefKind.INLINE, value, value)
    if value.startswith(CLOUD_PREFIX):
        return ImageRef(ImageRefKind.OBJECT_EXPLICIT, _require_key(value, CLOUD_PREFIX), value)
    if value.startswith(FILE_PREFIX):
        return ImageRef(ImageRefKind.LOCAL_FILE, _require_key(value, FILE_PREFIX), value)
    if value.startswith(WRAPPED_PREFIX):
        inner = decode_ref(_require_key(value, WRAPPED_PREFIX))
        return ImageRef(inner.kind, inner.key, value)
    if value.startswith(BROWSER_LOCAL_PREFIX):
        return ImageRef(ImageRefKind.BROWSER_LOCAL, value, value)
    return ImageRef(ImageRefKind.OBJECT, value, value)


def encode_ref(ref: ImageRef) -> str:
    return ref.encoded


def try_decode_ref(value: str) -> ImageRef | None:
    try:
        return decode_ref(value)
    except InvalidImageRefError:
        return None


def _require_key(value: str, prefix: str) -> str:
    key = value[len(prefix):]
    if not key:
        raise InvalidImageRefError(f"Empty key in image reference: {value!r}")
    return key


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_image_key(extension: str = "png") -> str:
    """Mint a new storage key: base-36 millis, random suffix, extension."""
    stamp = _to_base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"{stamp}-{suffix}.{extension or 'png'}"


def extension_for_mime(mime_type: str) -> str:
    """``image/svg+xml; charset=x`` -> ``svg``; unknown -> ``png``."""
    subtype = mime_type.split("/", 1)[1] if "/" in mime_type else ""
    subtype = subtype.split(";", 1)[0].split("+", 1)[0].strip()
    return subtype or "png"


@dataclass(frozen=True)
class InlinePayload:
    """Raw image bytes plus declared MIME type."""
    data: bytes
    mime_type: str = "image/png"

    @classmethod
    def from_data_url(cls, data_url: str) -> "InlinePayload":
        match = _DATA_URL_RE.match(data_url or "")
        if not match:
            raise InvalidDataUrlError("Invalid data URL")
        try:
            data = base64.b64decode(re.sub(r"\s", "", match.group(2)), validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidDataUrlError(f"Invalid base64 payload: {e}") from e
        return cls(data=data, mime_type=match.group(1).strip() or "image/png")

    @property
    def extension(self) -> str:
        return extension_for_mime(self.mime_type)

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"
