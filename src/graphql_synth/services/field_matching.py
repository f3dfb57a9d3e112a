"""Resolution of a model's root-field answer to one of the candidates.

Matchers run in order and the first hit wins:

1. ``ExactIdMatcher``: the cleaned answer equals a candidate id.
2. ``SubstringIdMatcher``: the answer is contained in a candidate id, or a
   candidate id is contained in the answer. Candidates are tried in score
   order, so ties go to the highest-scored one.
3. ``HighestScoreMatcher``: the top-scored candidate, which always matches.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from graphql_synth.models.document import SearchResult
from graphql_synth.utils.logging import get_logger

logger = get_logger("field_matching")

_STRIP_CHARS = " \t\r\n\"'`"


def normalize_answer(answer: Optional[str]) -> str:
    """Trim whitespace, quotes and backticks a model tends to wrap ids in."""
    if not answer:
        return ""
    return answer.strip().strip(_STRIP_CHARS)


class RootFieldMatcher(ABC):
    """One tier of the root-field resolution chain."""

    name: str = "matcher"

    @abstractmethod
    def match(self, answer: str, candidates: Sequence[SearchResult]) -> Optional[SearchResult]:
        """Return the matching candidate or None. ``answer`` is already normalized."""


class ExactIdMatcher(RootFieldMatcher):
    name = "exact"

    def match(self, answer: str, candidates: Sequence[SearchResult]) -> Optional[SearchResult]:
        if not answer:
            return None
        for candidate in candidates:
            if candidate.document.id == answer:
                return candidate
        return None


class SubstringIdMatcher(RootFieldMatcher):
    name = "substring"

    def match(self, answer: str, candidates: Sequence[SearchResult]) -> Optional[SearchResult]:
        if not answer:
            return None
        for candidate in candidates:
            doc_id = candidate.document.id
            if answer in doc_id or doc_id in answer:
                return candidate
        return None


class HighestScoreMatcher(RootFieldMatcher):
    name = "highest_score"

    def match(self, answer: str, candidates: Sequence[SearchResult]) -> Optional[SearchResult]:
        if not candidates:
            return None
        # max() keeps the first of equal scores
        return max(candidates, key=lambda c: c.score)


DEFAULT_MATCHERS: Tuple[RootFieldMatcher, ...] = (
    ExactIdMatcher(),
    SubstringIdMatcher(),
    HighestScoreMatcher(),
)


def resolve_root_field(
    answer: Optional[str],
    candidates: List[SearchResult],
    matchers: Sequence[RootFieldMatcher] = DEFAULT_MATCHERS,
) -> Tuple[SearchResult, str]:
    """Pick a candidate for the model's answer.

    Candidates must be ordered by descending score. Returns the chosen
    candidate and the name of the matcher that chose it.
    """
    if not candidates:
        raise ValueError("resolve_root_field requires at least one candidate")

    cleaned = normalize_answer(answer)
    for matcher in matchers:
        hit = matcher.match(cleaned, candidates)
        if hit is not None:
            if matcher.name != "exact":
                logger.info(
                    f"Root field resolved by {matcher.name} match: answer={cleaned!r}, "
                    f"selected={hit.document.id}"
                )
            return hit, matcher.name

    # A chain without a catch-all can get here
    return candidates[0], HighestScoreMatcher.name
