"""
Swiss pairing

Pure function from standings and match history to next-round pairings.
No database access, no randomness.

Policy:
- Sort by cumulative score descending, then agent id ascending
- Greedy sweep from the top: each unpaired agent takes the first
  unpaired agent below it that it has not played yet
- If every remaining candidate is a previous opponent, pair with the
  first remaining candidate anyway (rematch fallback)
- An odd agent out receives a bye, worth a win and 3 points
"""
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Tuple


@dataclass(frozen=True)
class SwissEntry:
    agent_id: int
    score: int = 0
    previous_opponents: FrozenSet[int] = field(default_factory=frozenset)


@dataclass
class PairingResult:
    pairs: List[Tuple[int, int]]
    byes: List[int]
    rematches: List[Tuple[int, int]]


def swiss_pairing(entries: Iterable[SwissEntry]) -> PairingResult:
    """
    Compute next-round pairings.

    Args:
        entries: One entry per participant

    Returns:
        PairingResult with floor(N/2) disjoint pairs and at most one bye
    """
    ordered = sorted(entries, key=lambda e: (-e.score, e.agent_id))
    paired = set()
    pairs = []
    rematches = []

    for i, entry in enumerate(ordered):
        if entry.agent_id in paired:
            continue

        opponent = None
        for candidate in ordered[i + 1:]:
            if candidate.agent_id in paired:
                continue
            if candidate.agent_id not in entry.previous_opponents:
                opponent = candidate
                break

        if opponent is None:
            for candidate in ordered[i + 1:]:
                if candidate.agent_id not in paired:
                    opponent = candidate
                    rematches.append((entry.agent_id, candidate.agent_id))
                    break

        if opponent is not None:
            pairs.append((entry.agent_id, opponent.agent_id))
            paired.add(entry.agent_id)
            paired.add(opponent.agent_id)

    byes = [entry.agent_id for entry in ordered if entry.agent_id not in paired]
    return PairingResult(pairs=pairs, byes=byes, rematches=rematches)
