"""
Tests for the pgvector literal codec.
"""

import pytest

from storage.vector_codec import parse_vector_literal, to_vector_literal


def test_encodes_floats_without_spaces():
    assert to_vector_literal([1, 0.5, -2.25]) == "[1.0,0.5,-2.25]"


def test_parses_literal_with_whitespace():
    assert parse_vector_literal(" [0.1, 2, -3e-2] ") == [0.1, 2.0, -0.03]


def test_passes_through_decoded_sequences():
    assert parse_vector_literal((1, 2)) == [1.0, 2.0]


def test_empty_literal_is_empty_vector():
    assert parse_vector_literal("[]") == []


@pytest.mark.parametrize("value", [None, "0.1,0.2", "(1,2)"])
def test_rejects_non_literals(value):
    with pytest.raises(ValueError):
        parse_vector_literal(value)
