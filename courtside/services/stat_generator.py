"""
Stat Generator

Pure functions turning numeric inputs and a random source into attribute
sets, overall ratings, salaries and per-game box scores. Nothing here
touches the database.

Every function that draws random numbers accepts an optional
``random.Random`` so callers and tests can seed it.
"""
import random
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

from courtside.orm.agent import SKILL_ATTRIBUTES


# =============================================================================
# Position weights
# =============================================================================

# shooting, defense, speed, stamina, basketball_iq, passing, rebound
POSITION_WEIGHTS: Dict[str, Dict[str, float]] = {
    "PG": dict(zip(SKILL_ATTRIBUTES, (0.8, 0.6, 1.2, 0.8, 1.3, 1.5, 0.3))),
    "SG": dict(zip(SKILL_ATTRIBUTES, (1.5, 0.7, 1.0, 0.9, 0.9, 0.8, 0.4))),
    "SF": dict(zip(SKILL_ATTRIBUTES, (1.0, 1.0, 0.9, 1.0, 1.0, 0.8, 0.8))),
    "PF": dict(zip(SKILL_ATTRIBUTES, (0.7, 1.2, 0.7, 1.1, 0.8, 0.5, 1.3))),
    "C": dict(zip(SKILL_ATTRIBUTES, (0.4, 1.4, 0.5, 1.2, 0.7, 0.4, 1.5))),
}

POSITIONS = tuple(POSITION_WEIGHTS.keys())

NPC_FIRST_NAMES = (
    "Shadow", "Storm", "Thunder", "Blaze", "Frost", "Dusk", "Ray", "Nova",
    "Iron", "Gold", "Silver", "Jade", "Ink", "Rime", "Fury", "Onyx",
    "Ash", "Crimson", "Ivory", "Violet", "Azure", "Ghost", "Proud", "Wild",
)
NPC_LAST_NAMES = (
    "Dragon", "Tiger", "Hawk", "Wolf", "Panther", "Viper", "Bear", "Crane",
    "Blade", "Fist", "Spear", "Shield", "Bow", "Sword", "Hammer", "Axe",
)


def position_weights(position: Optional[str]) -> Dict[str, float]:
    """Weight vector for a position; unknown positions use SF."""
    key = getattr(position, "value", position)
    return POSITION_WEIGHTS.get(key, POSITION_WEIGHTS["SF"])


def _clamp(value: float, low: int, high: int) -> int:
    return max(low, min(high, value))


# =============================================================================
# Ratings and salary
# =============================================================================

def calculate_ovr(attributes: Dict[str, int], position: Optional[str]) -> int:
    """Weighted average of the seven skills, weights normalized by their sum."""
    weights = position_weights(position)
    total_weight = sum(weights.values())
    weighted = sum(attributes[name] * weights[name] for name in SKILL_ATTRIBUTES)
    return round(weighted / total_weight)


def calculate_salary(ovr: int) -> int:
    if ovr >= 90:
        return 300
    if ovr >= 80:
        return 200
    if ovr >= 70:
        return 120
    if ovr >= 60:
        return 80
    if ovr >= 50:
        return 50
    return 30


def average_skill(attributes: Dict[str, int]) -> float:
    return sum(attributes[name] for name in SKILL_ATTRIBUTES) / len(SKILL_ATTRIBUTES)


# =============================================================================
# Attribute generation
# =============================================================================

def generate_attributes(
    cognitive_score: int,
    luck_value: int,
    position: Optional[str],
    rng: Optional[random.Random] = None
) -> Dict[str, int]:
    """
    Initial skills for a newly registered agent.

    Higher cognition raises the floor, luck scales a bonus, and the
    position weight pushes each skill up or down. Every skill lands in [30, 95].
    """
    rng = rng or random
    base = 40 + cognitive_score // 5
    luck_factor = luck_value / 100
    weights = position_weights(position)

    attributes = {}
    for name in SKILL_ATTRIBUTES:
        swing = rng.uniform(-10, 10)
        luck_bonus = rng.uniform(0, 15) * luck_factor
        value = round(base + swing + luck_bonus + (weights[name] - 1) * 8)
        attributes[name] = _clamp(value, 30, 95)
    return attributes


def generate_npc_attributes(position: Optional[str], rng: Optional[random.Random] = None) -> Dict[str, int]:
    """NPC skills: narrower than real agents, always in [35, 85]."""
    rng = rng or random
    base = 45 + round(rng.random() * 20)
    weights = position_weights(position)
    return {
        name: _clamp(round(base + (weights[name] - 1) * 10 + rng.uniform(-8, 8)), 35, 85)
        for name in SKILL_ATTRIBUTES
    }


def generate_npc_name(rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    return f"{rng.choice(NPC_FIRST_NAMES)} {rng.choice(NPC_LAST_NAMES)}"


# =============================================================================
# Game simulation
# =============================================================================

@dataclass
class BoxScore:
    minutes: int
    points: int
    rebounds: int
    assists: int
    steals: int
    blocks: int
    turnovers: int
    rating: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class GameSimulation:
    home_stats: BoxScore
    away_stats: BoxScore
    home_score: int
    away_score: int
    narrative: str


def simulate_player_game_stats(
    attributes: Dict[str, int],
    luck_value: int = 50,
    rng: Optional[random.Random] = None
) -> BoxScore:
    """One agent's box score for one game."""
    rng = rng or random
    luck = rng.uniform(0.8, 1.2)
    luck_boost = luck_value / 200

    minutes = round(24 + rng.random() * 16)

    shooting = attributes["shooting"] / 100
    defense = attributes["defense"] / 100
    speed = attributes["speed"] / 100
    iq = attributes["basketball_iq"] / 100
    passing = attributes["passing"] / 100
    rebound = attributes["rebound"] / 100

    shooting_chances = round(shooting * minutes * 0.6 * luck)
    points = round(shooting_chances * (shooting + luck_boost) * 2.2)
    rebounds = round(rebound * minutes * 0.35 * luck + rng.random() * 3)
    assists = round(passing * iq * minutes * 0.3 * luck + rng.random() * 2)
    steals = round(defense * speed * minutes * 0.08 * luck)
    blocks = round(defense * rebound * minutes * 0.06 * luck)
    turnovers = max(0, round(3 - attributes["basketball_iq"] / 50 + rng.random() * 3))

    contribution = (
        points * 1.0 + rebounds * 1.2 + assists * 1.5
        + steals * 2 + blocks * 2 - turnovers * 1.5
    )
    rating = _clamp(round(contribution / (minutes / 10) * 10), 1, 99)

    return BoxScore(
        minutes=minutes,
        points=max(0, points),
        rebounds=max(0, rebounds),
        assists=max(0, assists),
        steals=max(0, steals),
        blocks=max(0, blocks),
        turnovers=turnovers,
        rating=rating,
    )


def build_game_narrative(
    home_name: str,
    away_name: str,
    home_stats: BoxScore,
    away_stats: BoxScore,
    home_score: int,
    away_score: int
) -> str:
    lines: List[str] = []

    for name, stats in ((home_name, home_stats), (away_name, away_stats)):
        if stats.points >= 30:
            lines.append(f"{name} exploded for {stats.points} points!")
        elif stats.points >= 20:
            lines.append(f"{name} put up a solid {stats.points} points.")

    for name, stats in ((home_name, home_stats), (away_name, away_stats)):
        if stats.assists >= 8:
            lines.append(f"{name} ran the offense with {stats.assists} assists.")
    for name, stats in ((home_name, home_stats), (away_name, away_stats)):
        if stats.rebounds >= 10:
            lines.append(f"{name} dominated the paint with {stats.rebounds} rebounds.")

    margin = abs(home_score - away_score)
    if margin <= 3:
        lines.append("A nail-biter that went down to the final possession!")
    elif margin >= 20:
        winner = home_name if home_score > away_score else away_name
        lines.append(f"{winner}'s side won a {margin}-point blowout.")

    if not lines:
        return f"A regular matchup, final score {home_score}:{away_score}."
    return " ".join(lines)


def simulate_game(
    home_attributes: Dict[str, int],
    away_attributes: Dict[str, int],
    home_name: str,
    away_name: str,
    home_luck: int = 50,
    away_luck: int = 50,
    rng: Optional[random.Random] = None
) -> GameSimulation:
    """
    Base result of one game before any judge adjustment.

    Final score is the agent's points plus a 60-90 point team contribution.
    """
    rng = rng or random
    home_stats = simulate_player_game_stats(home_attributes, home_luck, rng)
    away_stats = simulate_player_game_stats(away_attributes, away_luck, rng)

    home_score = home_stats.points + round(60 + rng.random() * 30)
    away_score = away_stats.points + round(60 + rng.random() * 30)

    narrative = build_game_narrative(
        home_name, away_name, home_stats, away_stats, home_score, away_score
    )
    return GameSimulation(
        home_stats=home_stats,
        away_stats=away_stats,
        home_score=home_score,
        away_score=away_score,
        narrative=narrative,
    )
