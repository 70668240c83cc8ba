"""
Tests for list-valued query parameter parsing.
"""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest
from starlette.datastructures import QueryParams

from errors import InvalidRequestError
from utils.request_utils import parse_list_param


def _parse(query: str):
    return parse_list_param(
        QueryParams(query),
        "categories",
        "category",
        invalid_json_message="bad json",
        not_a_list_message="not a list",
    )


def test_json_array():
    assert _parse('categories=["sponsor","intro"]') == ["sponsor", "intro"]


def test_repeated_scalar():
    assert _parse("category=sponsor&category=intro") == ["sponsor", "intro"]


def test_json_form_wins_over_repeated():
    assert _parse('categories=["outro"]&category=sponsor') == ["outro"]


def test_absent_is_none():
    assert _parse("videoID=abc") is None


def test_json_array_items_are_not_validated():
    """Filtering unknown entries is up to the caller."""
    assert _parse('categories=["sponsor",7,null]') == ["sponsor", 7, None]


def test_malformed_json():
    with pytest.raises(InvalidRequestError) as exc:
        _parse("categories=[sponsor")
    assert exc.value.public_message == "bad json"


@pytest.mark.parametrize("raw", ['"sponsor"', "{}", "3", "null"])
def test_json_non_array(raw):
    with pytest.raises(InvalidRequestError) as exc:
        _parse(f"categories={raw}")
    assert exc.value.public_message == "not a list"
