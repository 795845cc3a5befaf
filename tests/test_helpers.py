from collections import namedtuple

import pytest

from codevote import helpers


Row = namedtuple("Row", ["name", "vote_count"])


def test_normalize_code():
    assert helpers.normalize_code("  ab1234 ") == "AB1234"
    assert helpers.normalize_code(None) == ""
    assert helpers.normalize_code(1234) == ""


def test_generated_codes_have_their_type_shape():
    for _ in range(50):
        assert helpers.is_delegate_code(helpers.generate_code("delegate"))
        officer = helpers.generate_code("officer")
        assert len(officer) == helpers.OFFICER_TOKEN_LENGTH
        assert officer.isalnum() and officer == officer.upper()
    with pytest.raises(ValueError):
        helpers.generate_code("voter")


@pytest.mark.parametrize("code, ok", [("AB1234", True), ("ab1234", True), ("A12345", False), ("AB123", False)])
def test_is_delegate_code(code, ok):
    assert helpers.is_delegate_code(code) is ok


def test_dense_ranks_keep_incoming_order_within_a_tie():
    rows = [Row("a", 8), Row("b", 10), Row("c", 8), Row("d", 3)]
    ranked = [(rank, row.name) for rank, row in helpers.dense_ranks(rows)]
    assert ranked == [(1, "b"), (2, "a"), (2, "c"), (3, "d")]


def test_isoformat_passes_none_through():
    assert helpers.isoformat(None) is None
    assert helpers.utcnow().tzinfo is not None
