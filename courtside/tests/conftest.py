"""
Shared fixtures: in-memory database, agent factory and an offline world model.
"""
import random
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from courtside.orm.base import Base
import courtside.orm  # registers every model
from courtside.orm.agent import Agent, AgentStatus, Position, SKILL_ATTRIBUTES
from courtside.services import llm_client, world_model_service
from courtside.services.llm_client import LLMClient
from courtside.services.world_model_service import WorldModel

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(autouse=True)
def offline_llm(monkeypatch):
    """No test ever reaches a real generative endpoint."""
    monkeypatch.delenv("WORLD_MODEL_API_KEY", raising=False)
    monkeypatch.delenv("KIMI_API_KEY", raising=False)
    monkeypatch.setattr(llm_client, "_default_client", None)
    monkeypatch.setattr(world_model_service, "_world_model", None)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def world_model():
    """World model that always takes the local fallback path."""
    return WorldModel(llm_client=LLMClient(api_key=""), rng=random.Random(99))


@pytest.fixture
def agent_factory(db: AsyncSession):
    """
    Create and commit an agent.

    Usage:
        agent = await agent_factory("Ace", team_name="Storm Eagles")
    """
    counter = {"n": 0}

    async def create(
        nickname: str = None,
        is_npc: bool = False,
        team_name: str = "Thunder Wolves",
        position: Position = Position.SF,
        skill: int = 60,
        token_balance: int = None,
        status: AgentStatus = AgentStatus.ACTIVE,
        **overrides
    ) -> Agent:
        counter["n"] += 1
        balance = token_balance if token_balance is not None else (500 if is_npc else 1000)
        agent = Agent(
            user_id=None if is_npc else f"user_{counter['n']}",
            nickname=nickname or f"Agent {counter['n']}",
            is_npc=is_npc,
            status=status,
            position=position,
            team_name=team_name,
            luck_value=50,
            cognitive_score=50,
            token_balance=balance,
            initial_balance=balance,
            total_earned=0,
            total_spent=0,
            **{name: skill for name in SKILL_ATTRIBUTES},
            **overrides,
        )
        db.add(agent)
        await db.commit()
        return agent

    return create
