"""
pgvector text literal codec.
Vectors travel through PostgREST as "[v1,v2,...]" strings.
"""
from typing import List, Sequence, Union


def to_vector_literal(vector: Sequence[float]) -> str:
    """Encode a vector as a pgvector literal."""
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


def parse_vector_literal(value: Union[str, Sequence[float]]) -> List[float]:
    """
    Decode a pgvector literal.

    Args:
        value: "[v1,v2,...]" string, or an already-decoded sequence

    Returns:
        List of floats

    Raises:
        ValueError: If the value is not a vector literal
    """
    if value is None:
        raise ValueError("Vector literal is empty")

    if not isinstance(value, str):
        return [float(v) for v in value]

    text = value.strip()
    if not (text.startswith("[") and text.endswith("]")):
        raise ValueError(f"Not a vector literal: {text[:40]!r}")

    body = text[1:-1].strip()
    if not body:
        return []
    return [float(part) for part in body.split(",")]
