"""Viewer visibility filtering."""

from .visibility import accessible_scopes, filter_visible, is_visible

__all__ = ["accessible_scopes", "filter_visible", "is_visible"]
