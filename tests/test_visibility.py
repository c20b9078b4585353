from __future__ import annotations

import pytest

from regsync.access import accessible_scopes, filter_visible, is_visible
from regsync.models import PolicyScope, ScopeLevel, UserLocation, Viewer

LANGLEY = UserLocation(installation="JB Langley-Eustis", majcom="ACC", wing="1 FW", group="1 OG", squadron="27 FS")


@pytest.mark.parametrize(
    ("scope", "expected"),
    [
        (PolicyScope(ScopeLevel.DOD, "DoD"), True),
        (PolicyScope(ScopeLevel.DAF, "DAF"), True),
        (PolicyScope(ScopeLevel.MAJCOM, "ACC"), True),
        (PolicyScope(ScopeLevel.MAJCOM, "AMC"), False),
        (PolicyScope(ScopeLevel.INSTALLATION, "JB Langley-Eustis"), True),
        (PolicyScope(ScopeLevel.WING, "4 FW"), False),
        (PolicyScope(ScopeLevel.GROUP, "1 OG"), True),
        (PolicyScope(ScopeLevel.SQUADRON, "94 FS"), False),
        (None, True),
    ],
)
def test_scope_visibility_for_location(scope: PolicyScope | None, expected: bool) -> None:
    assert is_visible(LANGLEY, scope) is expected


def test_admin_sees_everything() -> None:
    assert is_visible(LANGLEY, PolicyScope(ScopeLevel.MAJCOM, "AMC"), is_admin=True)


def test_unknown_level_is_hidden() -> None:
    assert is_visible(LANGLEY, PolicyScope("numbered_air_force", "9 AF")) is False  # type: ignore[arg-type]


def test_group_scope_hidden_when_viewer_has_no_group() -> None:
    location = UserLocation(installation="Dover AFB", majcom="AMC", wing="436 AW")

    assert is_visible(location, PolicyScope(ScopeLevel.GROUP, "436 OG")) is False


def test_filter_visible_keeps_order() -> None:
    policies = [
        ("wing-local", PolicyScope(ScopeLevel.WING, "1 FW")),
        ("other-majcom", PolicyScope(ScopeLevel.MAJCOM, "AMC")),
        ("unscoped", None),
    ]

    visible = filter_visible(policies, Viewer(location=LANGLEY), lambda policy: policy[1])
    everything = filter_visible(policies, Viewer(location=LANGLEY, is_admin=True), lambda policy: policy[1])

    assert [policy_id for policy_id, _ in visible] == ["wing-local", "unscoped"]
    assert len(everything) == 3


def test_accessible_scopes_broadest_first() -> None:
    scopes = accessible_scopes(UserLocation(installation="Dover AFB", majcom="AMC", wing="436 AW"))

    assert [scope.level for scope in scopes] == [
        ScopeLevel.DOD,
        ScopeLevel.DAF,
        ScopeLevel.MAJCOM,
        ScopeLevel.INSTALLATION,
        ScopeLevel.WING,
    ]
    assert all(is_visible(UserLocation("Dover AFB", "AMC", "436 AW"), scope) for scope in scopes)


def test_wing_scope_for_another_wing_is_hidden_but_daf_is_not() -> None:
    location = UserLocation(installation="JBSA", majcom="AETC", wing="73 MDW")

    assert is_visible(location, PolicyScope(ScopeLevel.WING, "502 ABW")) is False
    assert is_visible(location, PolicyScope(ScopeLevel.DAF, "DAF")) is True
