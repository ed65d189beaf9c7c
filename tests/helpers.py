"""Vector helpers shared by the test modules."""

import math

DIM = 4

QUERY_VECTOR = [1.0, 0.0, 0.0, 0.0]


def vector_at(similarity: float):
    """Unit vector whose cosine similarity to QUERY_VECTOR is ``similarity``."""
    return [similarity, math.sqrt(max(1.0 - similarity**2, 0.0)), 0.0, 0.0]
