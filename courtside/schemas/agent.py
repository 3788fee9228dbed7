"""
Pydantic schemas for agent registration and reflection requests.
"""
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from courtside.orm.agent import Position
from courtside.schemas.world_model import SkillName, normalize_skill


# ============================================================================
# Agent
# ============================================================================

class AgentCreateRequest(BaseModel):
    """Register a new agent."""
    user_id: str = Field(..., min_length=1, max_length=100)
    nickname: str = Field(..., min_length=1, max_length=50)
    position: Position
    cognitive_score: int = Field(50, ge=0, le=100, description="Drives the attribute floor")
    luck_value: int = Field(50, ge=0, le=100, description="Scales attribute and game-stat bonuses")
    life_vision: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = Field(None, max_length=500)


# ============================================================================
# Reflection
# ============================================================================

class ReflectionRequest(BaseModel):
    """Submit a training reflection."""
    content: str = Field(..., min_length=5, max_length=1000)
    focus_attribute: Optional[SkillName] = Field(None, description="Skill to concentrate training on")

    @field_validator("focus_attribute", mode="before")
    @classmethod
    def accept_camel_case_skill(cls, v):
        return normalize_skill(v)
