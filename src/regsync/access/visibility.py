"""Scope-based visibility of policies for a viewer's location."""

from __future__ import annotations

from typing import Callable, Iterable, List, TypeVar

from regsync.models import PolicyScope, ScopeLevel, UserLocation, Viewer

T = TypeVar("T")

_EVERYONE = frozenset({ScopeLevel.DOD, ScopeLevel.DAF})
_LOCATION_FIELD = {
    ScopeLevel.MAJCOM: "majcom",
    ScopeLevel.INSTALLATION: "installation",
    ScopeLevel.WING: "wing",
    ScopeLevel.GROUP: "group",
    ScopeLevel.SQUADRON: "squadron",
}


def is_visible(location: UserLocation, scope: PolicyScope | None = None, *, is_admin: bool = False) -> bool:
    """Return whether a policy with ``scope`` is visible from ``location``.

    Policies without a scope count as DAF-wide. Administrators see everything.
    """

    if is_admin or scope is None:
        return True
    try:
        level = ScopeLevel(scope.level)
    except ValueError:
        return False
    if level in _EVERYONE:
        return True
    field_name = _LOCATION_FIELD.get(level)
    if field_name is None:
        return False
    return getattr(location, field_name) == scope.value


def filter_visible(items: Iterable[T], viewer: Viewer, scope_of: Callable[[T], PolicyScope | None]) -> List[T]:
    if viewer.is_admin:
        return list(items)
    return [item for item in items if is_visible(viewer.location, scope_of(item))]


def accessible_scopes(location: UserLocation) -> List[PolicyScope]:
    """Scopes whose policies ``location`` can see, broadest first."""

    scopes = [
        PolicyScope(level=ScopeLevel.DOD, value="DoD"),
        PolicyScope(level=ScopeLevel.DAF, value="DAF"),
        PolicyScope(level=ScopeLevel.MAJCOM, value=location.majcom),
        PolicyScope(level=ScopeLevel.INSTALLATION, value=location.installation),
        PolicyScope(level=ScopeLevel.WING, value=location.wing),
    ]
    if location.group:
        scopes.append(PolicyScope(level=ScopeLevel.GROUP, value=location.group))
    if location.squadron:
        scopes.append(PolicyScope(level=ScopeLevel.SQUADRON, value=location.squadron))
    return scopes


__all__ = ["accessible_scopes", "filter_visible", "is_visible"]
