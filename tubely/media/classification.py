from __future__ import annotations

import enum

from .naming import AssetName


class Classification(str, enum.Enum):
    landscape = "landscape"
    portrait = "portrait"
    other = "other"


_RATIO_CLASSES = {
    "16:9": Classification.landscape,
    "9:16": Classification.portrait,
}


def classify_aspect_ratio(ratio: str | None) -> Classification:
    """Map a display aspect ratio such as ``16:9`` to its storage class. Total; never raises."""
    if not ratio:
        return Classification.other
    return _RATIO_CLASSES.get(ratio, Classification.other)


def build_storage_key(classification: Classification, asset: AssetName) -> str:
    return f"{classification.value}/{asset.filename}"


__all__ = ["Classification", "classify_aspect_ratio", "build_storage_key"]
