"""
Game economy, season and tournament constants.

Every numeric value can be overridden from the environment.
"""
import os
from typing import Tuple


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return int(value)


def get_float_env(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return float(value)


class TokenConfig:
    INITIAL_BALANCE: int = get_int_env("INITIAL_BALANCE", 1000)
    NPC_INITIAL_BALANCE: int = get_int_env("NPC_INITIAL_BALANCE", 500)
    # Flat cost both sides pay in a game between two NPCs
    NPC_GAME_COST: int = get_int_env("NPC_GAME_COST", 3)


class SeasonConfig:
    TOTAL_GAMES: int = get_int_env("SEASON_TOTAL_GAMES", 30)
    GAMES_PER_SIMULATION: int = get_int_env("GAMES_PER_SIMULATION", 5)
    NPC_POPULATION_FLOOR: int = get_int_env("NPC_POPULATION_FLOOR", 30)

    TEAMS: Tuple[str, ...] = (
        "Thunder Wolves",
        "Golden Dragons",
        "Storm Eagles",
        "Iron Titans",
        "Shadow Panthers",
        "Blaze Phoenix",
        "Frost Giants",
        "Neon Vipers",
    )


class TournamentConfig:
    ENTRY_FEE: int = get_int_env("TOURNAMENT_ENTRY_FEE", 50)
    SYSTEM_SUBSIDY: int = get_int_env("TOURNAMENT_SYSTEM_SUBSIDY", 200)
    DEFAULT_ROUNDS: int = get_int_env("TOURNAMENT_ROUNDS", 3)
    MIN_PARTICIPANTS: int = get_int_env("TOURNAMENT_MIN_PARTICIPANTS", 4)
    MAX_PARTICIPANTS: int = get_int_env("TOURNAMENT_MAX_PARTICIPANTS", 16)
    MIN_TOKEN_TO_ENTER: int = get_int_env("TOURNAMENT_MIN_TOKENS", 100)
    REGISTRATION_MINUTES: int = get_int_env("TOURNAMENT_REGISTRATION_MINUTES", 30)
    INTERVAL_HOURS: float = get_float_env("TOURNAMENT_INTERVAL_HOURS", 6.0)

    # Share of the prize pool by placement (index 0 = champion)
    PRIZE_DISTRIBUTION: Tuple[float, ...] = (0.5, 0.3, 0.2)

    WIN_POINTS: int = 3
    DRAW_POINTS: int = 1
    LOSS_POINTS: int = 0

    NAME_TEMPLATES: Tuple[str, ...] = (
        "Street King Showdown",
        "Midnight Court Classic",
        "Rookie Rumble",
        "Legends Invitational",
        "Downtown Swiss Open",
        "Iron Rim Challenge",
    )


class WorldModelConfig:
    API_URL: str = os.getenv("WORLD_MODEL_API_URL", "https://api.moonshot.cn/v1/chat/completions")
    MODEL: str = os.getenv("WORLD_MODEL_NAME", "moonshot-v1-8k")
    TIMEOUT_SECONDS: float = get_float_env("WORLD_MODEL_TIMEOUT", 20.0)
    MAX_RETRIES: int = get_int_env("WORLD_MODEL_MAX_RETRIES", 1)
