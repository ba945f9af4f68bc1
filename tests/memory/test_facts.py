"""Tests for fact extraction and the per-conversation fact store."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from thirra_memory.memory.facts import FactStore, extract_assignments
from thirra_memory.memory.models import Fact


def _as_dict(facts: list[Fact]) -> dict[str, str]:
    return {f.key: f.value for f in facts}


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("x=90", {"x": "90"}),
        ("budget: 5000", {"budget": "5000"}),
        ("The value of Color is blue", {"color": "blue"}),
        ("please set mode to 'fast'", {"mode": "fast"}),
        ('name = "alice" and age=30', {"name": "alice", "age": "30"}),
        ("nothing to see here", {}),
        ("", {}),
    ],
)
def test_extract_assignments_patterns(text: str, expected: dict[str, str]) -> None:
    assert _as_dict(extract_assignments(text)) == expected


def test_later_assignment_wins() -> None:
    facts = extract_assignments("x=90 and later set x to 42")
    assert _as_dict(facts) == {"x": "42"}


def test_input_order_beats_pattern_order() -> None:
    assert extract_assignments("set x to 42 and then x=90") == [Fact(key="x", value="90")]


def test_keys_are_lowercased_in_first_mention_order() -> None:
    facts = extract_assignments("Zeta=1 alpha=2 ZETA=3")
    assert [(f.key, f.value) for f in facts] == [("zeta", "3"), ("alpha", "2")]


def test_fact_key_must_not_be_blank() -> None:
    with pytest.raises(ValidationError):
        Fact(key="   ", value="v")


def test_store_newest_value_wins() -> None:
    store = FactStore()
    store.record_from_text("c1", "x=90")
    store.record_from_text("c1", "set x to 42")
    assert store.get("c1") == {"x": "42"}
    assert store.get_text("c1") == "x=42"


def test_store_caps_keys_by_evicting_oldest() -> None:
    store = FactStore(max_facts=3)
    store.upsert("c1", {"a": "1", "b": "2", "c": "3"})
    store.upsert("c1", {"d": "4"})
    assert list(store.get("c1")) == ["b", "c", "d"]
    assert store.get_text("c1") == "b=2; c=3; d=4"


def test_store_skips_empty_pairs_and_isolates_conversations() -> None:
    store = FactStore()
    store.upsert("c1", {" Key ": " value ", "blank": "  "})
    assert store.get("c1") == {"key": "value"}
    assert store.get("c2") == {}
    assert store.get_text("c2") == ""


def test_store_clear_one_or_all() -> None:
    store = FactStore()
    store.upsert("c1", [Fact(key="a", value="1")])
    store.upsert("c2", [Fact(key="b", value="2")])
    store.clear("c1")
    assert store.get("c1") == {}
    assert store.get("c2") == {"b": "2"}
    store.clear()
    assert store.stats()["entries"] == 0


def test_get_returns_a_copy() -> None:
    store = FactStore()
    store.upsert("c1", {"a": "1"})
    store.get("c1")["a"] = "changed"
    assert store.get("c1") == {"a": "1"}
