from __future__ import annotations

import base64
import re
import secrets
from dataclasses import dataclass
from typing import Callable

__all__ = [
    "AssetName",
    "IDENTIFIER_BYTES",
    "media_type_to_ext",
    "generate_asset_name",
    "parse_media_type",
]

IDENTIFIER_BYTES = 32
FALLBACK_EXTENSION = ".bin"

_TOKEN = r"[A-Za-z0-9!#$&^_.+-]+"
_MEDIA_TYPE_RE = re.compile(rf"^({_TOKEN})/({_TOKEN})$")


@dataclass(frozen=True, slots=True)
class AssetName:
    """A random asset identifier plus the extension derived from its media type."""

    identifier: str
    extension: str

    @property
    def filename(self) -> str:
        return f"{self.identifier}{self.extension}"


def media_type_to_ext(media_type: str) -> str:
    """Return ``.subtype`` for ``type/subtype`` and ``.bin`` for anything else.

    Args:
        media_type: The declared media type, e.g. ``video/mp4``.

    Returns:
        The file extension including the leading dot.
    """
    parts = media_type.split("/")
    if len(parts) != 2:
        return FALLBACK_EXTENSION
    return f".{parts[1]}"


def generate_asset_name(
    media_type: str,
    *,
    token_source: Callable[[int], bytes] = secrets.token_bytes,
) -> AssetName:
    """Draw a fresh URL-safe identifier and pair it with the media type's extension.

    Args:
        media_type: The declared media type.
        token_source: Random byte source, replaceable in tests.

    Returns:
        The asset name. Never raises for malformed media types.
    """
    raw = token_source(IDENTIFIER_BYTES)
    identifier = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
    return AssetName(identifier=identifier, extension=media_type_to_ext(media_type))


def parse_media_type(raw: str | None) -> str:
    """Parse a Content-Type header value down to its lower-cased ``type/subtype``.

    Parameters after ``;`` are discarded.

    Raises:
        ValueError: If the value is missing or not a ``type/subtype`` pair.
    """
    if not raw:
        raise ValueError("missing media type")
    essence = raw.split(";", 1)[0].strip()
    if not _MEDIA_TYPE_RE.match(essence):
        raise ValueError(f"malformed media type: {raw!r}")
    return essence.lower()
