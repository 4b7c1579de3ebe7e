"""Media helpers: asset naming, ffprobe inspection and fast-start remuxing."""

ACCEPTED_VIDEO_TYPE = "video/mp4"

__all__ = ["ACCEPTED_VIDEO_TYPE"]
