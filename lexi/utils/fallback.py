"""First-success combinator for ordered backend fallback.

Generation and embedding both follow the same shape: try backend A, on
failure try backend B, and only surface an error once every candidate has
failed. This module keeps that loop in one place.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from lexi.core.exceptions import ConfigurationError, ValidationError, is_transient

logger = logging.getLogger(__name__)

C = TypeVar("C")
R = TypeVar("R")


class AllCandidatesFailed(Exception):
    """Every candidate raised. errors holds (name, exception) in attempt order."""

    def __init__(self, errors: list[tuple[str, Exception]]) -> None:
        summary = "; ".join(f"{name}: {error}" for name, error in errors)
        super().__init__(f"All {len(errors)} candidates failed. Errors: {summary}")
        self.errors = errors


@dataclass
class FallbackOutcome(Generic[C, R]):
    """Successful result of first_success().

    Attributes:
        candidate: The candidate that produced the result
        result: The value it returned
        failed: Names of candidates that failed before it, in order
    """

    candidate: C
    result: R
    failed: list[str] = field(default_factory=list)

    @property
    def was_fallback(self) -> bool:
        """True if at least one earlier candidate failed."""
        return bool(self.failed)


async def first_success(
    candidates: Sequence[C],
    call: Callable[[C], Awaitable[R]],
    name: Callable[[C], str] = str,
    label: str = "backend",
) -> FallbackOutcome[C, R]:
    """Return the result of the first candidate whose call succeeds.

    Validation errors are raised immediately: the input is bad, so no other
    backend would accept it either. Configuration errors are skipped quietly;
    every other error is logged as a warning before moving on.

    Args:
        candidates: Backends in priority order
        call: Coroutine function invoked with each candidate
        name: Maps a candidate to a display name
        label: Noun used in log lines ("provider", "embedding provider")

    Returns:
        FallbackOutcome with the winning candidate and its result

    Raises:
        ValidationError: Propagated from the first candidate that raises it
        AllCandidatesFailed: If every candidate failed (or there were none)
    """
    errors: list[tuple[str, Exception]] = []

    for candidate in candidates:
        candidate_name = name(candidate)
        try:
            result = await call(candidate)
        except ValidationError:
            raise
        except ConfigurationError as e:
            logger.debug(f"Skipping unconfigured {label} {candidate_name}: {e}")
            errors.append((candidate_name, e))
            continue
        except Exception as e:
            kind = "transient" if is_transient(e) else "permanent"
            remaining = len(candidates) - len(errors) - 1
            logger.warning(
                f"{label.capitalize()} {candidate_name} failed ({kind}): {e}, "
                f"trying next ({remaining} remaining)"
            )
            errors.append((candidate_name, e))
            continue

        if errors:
            logger.info(
                f"Fallback succeeded: {candidate_name} "
                f"(failed: {[n for n, _ in errors]})"
            )
        return FallbackOutcome(
            candidate=candidate, result=result, failed=[n for n, _ in errors]
        )

    raise AllCandidatesFailed(errors)
