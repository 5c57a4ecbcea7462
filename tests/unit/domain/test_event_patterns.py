"""Event types and listener patterns: parsing, matching, rejection of unknown namespaces."""

import pytest

from carshare_activity.domain.exceptions import InvalidEventPatternError
from carshare_activity.domain.models.events import (
    ANY_EVENT,
    EventNamespace,
    EventPattern,
    EventType,
)


def test_event_type_parse_keeps_dotted_name():
    t = EventType.parse("admin.user.created")
    assert t.namespace is EventNamespace.ADMIN
    assert t.name == "user.created"
    assert str(t) == "admin.user.created"


@pytest.mark.parametrize("value", ["", "auth", "auth.", "unknown.login", "auth.*"])
def test_event_type_parse_rejects_malformed(value):
    with pytest.raises(InvalidEventPatternError):
        EventType.parse(value)


def test_namespace_wildcard_matches_only_its_namespace():
    pattern = EventPattern.parse("auth.*")
    assert pattern.matches(EventType.parse("auth.login"))
    assert pattern.matches(EventType.parse("auth.logout"))
    assert not pattern.matches(EventType.parse("booking.create"))


def test_exact_pattern_matches_single_type():
    pattern = EventPattern.parse("user.activity")
    assert pattern.matches(EventType.parse("user.activity"))
    assert not pattern.matches(EventType.parse("user.other"))


def test_prefix_pattern_matches_names_under_prefix():
    pattern = EventPattern.parse("admin.user.*")
    assert pattern.matches(EventType.parse("admin.user.created"))
    assert not pattern.matches(EventType.parse("admin.user"))
    assert not pattern.matches(EventType.parse("admin.role.assigned"))


def test_full_wildcard_matches_everything():
    assert EventPattern.parse("*") == ANY_EVENT
    for raw in ("auth.login", "system.error", "booking.create"):
        assert ANY_EVENT.matches(EventType.parse(raw))


@pytest.mark.parametrize("value", ["autth.*", "auth.lo*gin", "auth", "admin.*.created"])
def test_pattern_parse_rejects_typos_and_inner_wildcards(value):
    with pytest.raises(InvalidEventPatternError):
        EventPattern.parse(value)


def test_pattern_of_accepts_type_and_string():
    t = EventType(EventNamespace.SYSTEM, "error")
    assert EventPattern.of(t) == EventPattern.parse("system.error")
    assert str(EventPattern.of("security.*")) == "security.*"
