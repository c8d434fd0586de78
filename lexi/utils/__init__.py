"""Shared helpers: vector math and ordered fallback.

The service factory lives in lexi.utils.service_factory and is imported
from there directly (it depends on every other package).
"""

from lexi.utils.fallback import AllCandidatesFailed, FallbackOutcome, first_success
from lexi.utils.vectors import cosine_similarities, cosine_similarity, normalize_vector

__all__ = [
    "AllCandidatesFailed",
    "FallbackOutcome",
    "cosine_similarities",
    "cosine_similarity",
    "first_success",
    "normalize_vector",
]
