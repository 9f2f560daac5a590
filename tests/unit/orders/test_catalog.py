"""Unit tests for the laundry service catalog."""

from __future__ import annotations

import pytest

from modules.orders.catalog import (
    SERVICE_SEQUENCE,
    resolve_service_type,
    type_from_name,
    types_after,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Basic Wash", "wash"),
        ("SPIN cycle", "spin"),
        ("Tumble dry", "dry"),
        ("Dry Clean", "dry"),
        ("Iron & press", "iron"),
        ("fold", "fold"),
        ("  Folding  ", "fold"),
        ("Wash & Dry", "wash"),
        ("Steam press", None),
        ("", None),
        (None, None),
    ],
)
def test_type_from_name(name, expected):
    assert type_from_name(name) == expected


def test_first_keyword_in_catalog_order_wins():
    # "dry" and "fold" both appear; "dry" precedes "fold" in the sequence.
    assert type_from_name("Fold then dry") == "dry"


class TestResolveServiceType:
    def test_explicit_tag_takes_precedence_over_name(self):
        assert resolve_service_type({"service_name": "Wash", "service_type": "iron"}) == "iron"

    def test_tag_is_case_insensitive(self):
        assert resolve_service_type({"service_name": "x", "service_type": " Fold "}) == "fold"

    def test_invalid_tag_falls_back_to_name(self):
        service = {"service_name": "Express Wash", "service_type": "express"}
        assert resolve_service_type(service) == "wash"

    def test_missing_tag_uses_name(self):
        assert resolve_service_type({"service_name": "Spin only"}) == "spin"

    def test_unresolvable(self):
        assert resolve_service_type({"service_name": "Stain removal"}) is None


def test_types_after():
    assert types_after("wash") == ("spin", "dry", "iron", "fold")
    assert types_after("iron") == ("fold",)
    assert types_after("fold") == ()


def test_sequence_order():
    assert SERVICE_SEQUENCE == ("wash", "spin", "dry", "iron", "fold")
