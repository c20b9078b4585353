"""Line diff engine."""

from .engine import DEFAULT_MAX_EDIT_DISTANCE, diff, split_lines

__all__ = ["DEFAULT_MAX_EDIT_DISTANCE", "diff", "split_lines"]
