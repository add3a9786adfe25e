"""Fuzzy subsequence scoring for title search."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

SCORE_MATCH = 16
BONUS_BOUNDARY = 8
BONUS_CONSECUTIVE = 4
GAP_PENALTY = 1
MAX_LEADING_PENALTY = 3

_SEPARATORS = frozenset(" \t_-./\\")


@dataclass(frozen=True, slots=True)
class FuzzyMatch:
    """Score of a successful match and the matched character positions."""

    score: int
    positions: tuple[int, ...]


def _boundaries(text: str) -> list[bool]:
    flags: list[bool] = []
    previous = ""
    for index, char in enumerate(text):
        if index == 0 or previous in _SEPARATORS or previous.isspace():
            flags.append(True)
        elif previous.islower() and char.isupper():
            flags.append(True)
        elif previous.isalpha() and char.isdigit():
            flags.append(True)
        else:
            flags.append(False)
        previous = char
    return flags


def fuzzy_match(query: str, text: str) -> Optional[FuzzyMatch]:
    """Score ``query`` as a case-insensitive subsequence of ``text``.

    Every matched character earns ``SCORE_MATCH``. Characters at a word
    boundary earn ``BONUS_BOUNDARY``; each additional character of a
    contiguous run earns a bonus that grows with the run length. Characters
    skipped between two matches cost ``GAP_PENALTY`` each, and a small
    penalty applies to characters skipped before the first match.

    Args:
        query: Text typed by the user.
        text: Candidate title.

    Returns:
        FuzzyMatch | None: The best alignment, or ``None`` when ``query`` is
        not a subsequence of ``text``.
    """
    needle = query.casefold()
    if not needle:
        return FuzzyMatch(score=0, positions=())
    folded = [char.casefold() for char in text]
    if len(needle) > len(folded):
        return None
    boundary = _boundaries(text)
    size = len(folded)

    previous_scores: list[Optional[int]] = [None] * size
    previous_runs = [0] * size
    backtrack: list[list[int]] = []

    for row, wanted in enumerate(needle):
        scores: list[Optional[int]] = [None] * size
        runs = [0] * size
        links = [-1] * size
        # best of previous_scores[k] + k * GAP_PENALTY over k <= column - 2
        best_gap: Optional[int] = None
        best_gap_index = -1
        for column in range(size):
            if row > 0 and column >= 2:
                candidate_index = column - 2
                prior = previous_scores[candidate_index]
                if prior is not None:
                    candidate = prior + candidate_index * GAP_PENALTY
                    if best_gap is None or candidate > best_gap:
                        best_gap = candidate
                        best_gap_index = candidate_index
            if folded[column] != wanted:
                continue
            gain = SCORE_MATCH + (BONUS_BOUNDARY if boundary[column] else 0)
            if row == 0:
                scores[column] = gain - min(column, MAX_LEADING_PENALTY) * GAP_PENALTY
                runs[column] = 1
                continue

            best: Optional[int] = None
            if column >= 1 and previous_scores[column - 1] is not None:
                run = previous_runs[column - 1] + 1
                best = previous_scores[column - 1] + gain + BONUS_CONSECUTIVE * (run - 1)
                runs[column] = run
                links[column] = column - 1
            if best_gap is not None:
                gapped = best_gap - (column - 1) * GAP_PENALTY + gain
                if best is None or gapped > best:
                    best = gapped
                    runs[column] = 1
                    links[column] = best_gap_index
            scores[column] = best
        backtrack.append(links)
        previous_scores, previous_runs = scores, runs

    final_score: Optional[int] = None
    final_index = -1
    for column, score in enumerate(previous_scores):
        if score is not None and (final_score is None or score > final_score):
            final_score = score
            final_index = column
    if final_score is None:
        return None

    positions = [final_index]
    for row in range(len(needle) - 1, 0, -1):
        positions.append(backtrack[row][positions[-1]])
    positions.reverse()
    return FuzzyMatch(score=final_score, positions=tuple(positions))


def fuzzy_score(query: str, text: str) -> Optional[int]:
    """Return the fuzzy score of ``query`` against ``text`` (``None`` if no match)."""
    match = fuzzy_match(query, text)
    return None if match is None else match.score


__all__ = ["FuzzyMatch", "fuzzy_match", "fuzzy_score"]
