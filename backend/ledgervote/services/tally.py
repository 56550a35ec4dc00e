"""
Winner and tie resolution over a results table.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence


NO_CANDIDATES = "No candidates"
NO_WINNER = "No winner"


class OutcomeKind(str, Enum):
    """Possible shapes of an election outcome."""
    WINNER = "winner"
    TIE = "tie"
    NO_WINNER = "no_winner"
    NO_CANDIDATES = "no_candidates"


@dataclass(frozen=True)
class ElectionOutcome:
    """Resolved outcome of one round."""

    kind: OutcomeKind
    names: List[str] = field(default_factory=list)
    ids: List[int] = field(default_factory=list)
    max_votes: int = 0

    @property
    def winner(self) -> str:
        """Single-winner text in the ledger's ``getWinner`` form."""
        if self.kind == OutcomeKind.WINNER:
            return self.names[0]
        if self.kind == OutcomeKind.NO_CANDIDATES:
            return NO_CANDIDATES
        return NO_WINNER

    @property
    def is_settled(self) -> bool:
        """False for the placeholder outcomes an unsettled ledger can report."""
        return self.kind in (OutcomeKind.WINNER, OutcomeKind.TIE)


def decide_outcome(
    ids: Sequence[int],
    names: Sequence[str],
    counts: Sequence[int],
) -> ElectionOutcome:
    """
    Pick the candidate(s) with the strictly maximum count among those with
    at least one vote. Ties are reported as the full tie set; there is no
    tie-break by id or submission order.
    """
    if not (len(ids) == len(names) == len(counts)):
        raise ValueError("ids, names and counts must have the same length")

    if not ids:
        return ElectionOutcome(kind=OutcomeKind.NO_CANDIDATES)

    max_votes = max(counts)
    if max_votes <= 0:
        return ElectionOutcome(kind=OutcomeKind.NO_WINNER)

    leaders = [
        (candidate_id, name)
        for candidate_id, name, count in zip(ids, names, counts)
        if count == max_votes
    ]
    kind = OutcomeKind.WINNER if len(leaders) == 1 else OutcomeKind.TIE

    return ElectionOutcome(
        kind=kind,
        names=[name for _, name in leaders],
        ids=[candidate_id for candidate_id, _ in leaders],
        max_votes=max_votes,
    )
