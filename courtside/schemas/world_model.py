"""
Pydantic schemas for world model results.

One canonical model per judge call. Field aliases match the camelCase
keys the generative model is prompted to return; numeric fields are
clamped into their safe range on validation, so a value that parses is
always in range.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from courtside.orm.season import GameEventType


SkillName = Literal[
    "shooting", "defense", "speed", "stamina", "basketball_iq", "passing", "rebound"
]

# Names the model may use for a skill, mapped to attribute names
_SKILL_ALIASES = {
    "basketballiq": "basketball_iq",
    "basketball_iq": "basketball_iq",
    "iq": "basketball_iq",
}


def _clamp(value, low, high):
    return max(low, min(high, value))


def _coerce_number(value):
    """Round floats for integer fields; leave anything else to pydantic."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, float):
        return round(value)
    return value


def normalize_skill(value):
    if not isinstance(value, str):
        return value
    key = value.strip().lower()
    return _SKILL_ALIASES.get(key, key)


class _WorldModelSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ============================================================================
# Game verdict
# ============================================================================

class _Boost(_WorldModelSchema):
    attr: SkillName
    amount: int

    @field_validator("attr", mode="before")
    @classmethod
    def normalize_attr(cls, v):
        return normalize_skill(v)

    @field_validator("amount", mode="before")
    @classmethod
    def round_amount(cls, v):
        return _coerce_number(v)


class StatBonus(_Boost):
    amount: int = 1

    @field_validator("amount")
    @classmethod
    def clamp_amount(cls, v):
        return _clamp(v, 1, 3)


class TokenAdjust(_WorldModelSchema):
    home: int
    away: int

    @field_validator("home", "away", mode="before")
    @classmethod
    def round_tokens(cls, v):
        return _coerce_number(v)

    @field_validator("home", "away")
    @classmethod
    def clamp_tokens(cls, v):
        return _clamp(v, -10, 20)


class GameVerdict(_WorldModelSchema):
    """Outcome of judging one simulated game."""
    home_score_adjust: int = Field(0, alias="homeScoreAdjust")
    away_score_adjust: int = Field(0, alias="awayScoreAdjust")
    home_stat_bonus: Optional[StatBonus] = Field(None, alias="homeStatBonus")
    away_stat_bonus: Optional[StatBonus] = Field(None, alias="awayStatBonus")
    narrative: str = Field(..., min_length=1)
    mvp: Literal["home", "away"] = "home"
    event_type: GameEventType = Field(GameEventType.NORMAL, alias="eventType")
    token_adjust: TokenAdjust = Field(..., alias="tokenAdjust")

    @field_validator("home_score_adjust", "away_score_adjust", mode="before")
    @classmethod
    def round_adjust(cls, v):
        return _coerce_number(v)

    @field_validator("home_score_adjust", "away_score_adjust")
    @classmethod
    def clamp_adjust(cls, v):
        return _clamp(v, -15, 15)


# ============================================================================
# Season settlement
# ============================================================================

class SeasonSettlement(_WorldModelSchema):
    """Salary review for one agent at the end of a season."""
    salary_multiplier: float = Field(1.0, alias="salaryMultiplier")
    bonus_tokens: int = Field(0, alias="bonusTokens")
    narrative: str = Field(..., min_length=1)
    mvp_candidate: bool = Field(False, alias="mvpCandidate")
    trade_rumor: Optional[str] = Field(None, alias="tradeRumor")
    outlook: str = Field(..., min_length=1, alias="nextSeasonOutlook")

    @field_validator("salary_multiplier", mode="before")
    @classmethod
    def reject_bool(cls, v):
        if isinstance(v, bool):
            raise ValueError("boolean is not a number")
        return v

    @field_validator("salary_multiplier")
    @classmethod
    def clamp_multiplier(cls, v):
        return _clamp(v, 0.5, 2.0)

    @field_validator("bonus_tokens", mode="before")
    @classmethod
    def round_bonus(cls, v):
        return _coerce_number(v)

    @field_validator("bonus_tokens")
    @classmethod
    def clamp_bonus(cls, v):
        return _clamp(v, 0, 200)


# ============================================================================
# Reflection analysis
# ============================================================================

class PrimaryBoost(_Boost):
    @field_validator("amount")
    @classmethod
    def clamp_primary(cls, v):
        return _clamp(v, 1, 4)


class SecondaryBoost(_Boost):
    @field_validator("amount")
    @classmethod
    def clamp_secondary(cls, v):
        return _clamp(v, 0, 2)


class ReflectionAnalysis(_WorldModelSchema):
    """Training plan derived from a player's free-text reflection."""
    primary_boost: PrimaryBoost = Field(..., alias="primaryBoost")
    secondary_boost: Optional[SecondaryBoost] = Field(None, alias="secondaryBoost")
    cognitive_boost: int = Field(0, alias="cognitiveBoost")
    summary: str = Field(..., min_length=1)
    advice: str = Field(..., min_length=1)

    @field_validator("cognitive_boost", mode="before")
    @classmethod
    def round_cognitive(cls, v):
        return _coerce_number(v)

    @field_validator("cognitive_boost")
    @classmethod
    def clamp_cognitive(cls, v):
        return _clamp(v, 0, 3)
