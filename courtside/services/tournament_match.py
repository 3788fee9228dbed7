"""
Simplified tournament match engine.

Best of three rounds. Each round both sides roll floor(U * power); the
higher roll takes the round, equal rolls split it. The match stops early
once a side has two rounds.
"""
import random
from dataclasses import dataclass, field
from typing import List, Optional

from courtside.orm.agent import Agent
from courtside.services.stat_generator import calculate_ovr


@dataclass
class RoundRoll:
    round_num: int
    roll_a: int
    roll_b: int


@dataclass
class MatchOutcome:
    winner_id: Optional[int]
    score_a: int
    score_b: int
    narrative: str
    rounds: List[RoundRoll] = field(default_factory=list)

    @property
    def is_draw(self) -> bool:
        return self.winner_id is None


def calculate_power_rating(agent: Agent) -> int:
    """Overall rating plus level, form and experience."""
    ovr = calculate_ovr(agent.attributes(), agent.position)
    return max(1, ovr + (agent.level or 1) * 10 + round(agent.win_rate * 50) + (agent.experience or 0) // 10)


def _narrative(agent_a: Agent, agent_b: Agent, wins_a: int, wins_b: int, tournament_name: str, round_num: int) -> str:
    prefix = f"[{tournament_name} · Round {round_num}]"
    if wins_a == wins_b:
        return f"{prefix} {agent_a.nickname} and {agent_b.nickname} were dead even and battled to a draw."

    winner, loser = (agent_a, agent_b) if wins_a > wins_b else (agent_b, agent_a)
    high, low = max(wins_a, wins_b), min(wins_a, wins_b)
    if low == 0:
        return f"{prefix} {winner.nickname} swept {loser.nickname} {high}:{low} in a show of pure dominance!"
    return f"{prefix} {winner.nickname} edged {loser.nickname} {high}:{low} after a fierce fight."


def simulate_tournament_match(
    agent_a: Agent,
    agent_b: Agent,
    tournament_name: str,
    round_num: int,
    rng: Optional[random.Random] = None
) -> MatchOutcome:
    rng = rng or random
    power_a = calculate_power_rating(agent_a)
    power_b = calculate_power_rating(agent_b)

    rounds = []
    wins_a = wins_b = 0
    for i in range(1, 4):
        roll_a = int(rng.random() * power_a)
        roll_b = int(rng.random() * power_b)
        rounds.append(RoundRoll(round_num=i, roll_a=roll_a, roll_b=roll_b))
        if roll_a > roll_b:
            wins_a += 1
        elif roll_b > roll_a:
            wins_b += 1
        if wins_a >= 2 or wins_b >= 2:
            break

    if wins_a > wins_b:
        winner_id = agent_a.id
    elif wins_b > wins_a:
        winner_id = agent_b.id
    else:
        winner_id = None

    return MatchOutcome(
        winner_id=winner_id,
        score_a=wins_a,
        score_b=wins_b,
        narrative=_narrative(agent_a, agent_b, wins_a, wins_b, tournament_name, round_num),
        rounds=rounds,
    )
