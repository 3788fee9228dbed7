"""
Season Simulator Service

Creates seasons, simulates games in batches and pays salaries when a
season ends.

Features:
- NPC population floor and least-populated team assignment
- Stat generator base result adjusted by the world model verdict
- Token deltas through the ledger for real agents only
- Dialogue enrichment after the game is committed

Rules:
- games_played never exceeds total_games (each game reserves its slot
  with a conditional UPDATE)
- A season completes exactly once and salary is settled exactly once
- Fewer than two eligible agents is a no-op, never an error
"""
import logging
import random
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.config.game_config import TokenConfig, SeasonConfig
from courtside.orm.agent import Agent, AgentStatus, Position
from courtside.orm.economy import ActivityType, TransactionType, ReferenceType
from courtside.orm.season import (
    Season, SeasonStatus, Game, GameStats, SeasonStats, GameEventType
)
from courtside.schemas.world_model import GameVerdict, TokenAdjust
from courtside.services.activity_logger import log_activity
from courtside.services.interaction_service import generate_game_interactions
from courtside.services.stat_generator import (
    POSITIONS, BoxScore, GameSimulation, calculate_ovr, calculate_salary,
    generate_npc_attributes, generate_npc_name, simulate_game
)
from courtside.services.token_ledger_service import apply_token_change
from courtside.services.world_model_service import WorldModel, GameContext, get_world_model

logger = logging.getLogger(__name__)


EVENT_LABELS = {
    GameEventType.UPSET: "Upset",
    GameEventType.BLOWOUT: "Blowout",
    GameEventType.BUZZER_BEATER: "Buzzer-beater",
    GameEventType.INJURY_MINOR: "Minor injury",
}


# =============================================================================
# Roster
# =============================================================================

async def ensure_npc_agents(
    db: AsyncSession,
    floor: Optional[int] = None,
    rng: Optional[random.Random] = None
) -> int:
    """
    Top the NPC population up to the floor.

    Positions cycle PG..C and each block of five NPCs joins the next team.

    Returns:
        Number of NPCs created
    """
    rng = rng or random
    floor = SeasonConfig.NPC_POPULATION_FLOOR if floor is None else floor
    existing = (await db.execute(
        select(func.count(Agent.id)).where(Agent.is_npc.is_(True))
    )).scalar_one()
    needed = floor - existing
    if needed <= 0:
        return 0

    teams = SeasonConfig.TEAMS
    for i in range(needed):
        position = POSITIONS[i % len(POSITIONS)]
        npc = Agent(
            nickname=generate_npc_name(rng),
            user_id=None,
            bio="NPC player",
            is_npc=True,
            status=AgentStatus.ACTIVE,
            position=Position(position),
            team_name=teams[(i // len(POSITIONS)) % len(teams)],
            luck_value=round(30 + rng.random() * 40),
            cognitive_score=round(40 + rng.random() * 30),
            token_balance=TokenConfig.NPC_INITIAL_BALANCE,
            initial_balance=TokenConfig.NPC_INITIAL_BALANCE,
        )
        npc.set_attributes(generate_npc_attributes(position, rng))
        db.add(npc)

    await db.flush()
    logger.info(f"Created {needed} NPC agents")
    return needed


async def team_counts(db: AsyncSession) -> Dict[str, int]:
    result = await db.execute(
        select(Agent.team_name, func.count(Agent.id))
        .where(Agent.team_name.is_not(None))
        .group_by(Agent.team_name)
    )
    counts = Counter({team: 0 for team in SeasonConfig.TEAMS})
    counts.update({team: count for team, count in result.all() if team in counts})
    return dict(counts)


async def least_populated_team(db: AsyncSession) -> str:
    counts = await team_counts(db)
    # Ties go to the team listed first
    return min(SeasonConfig.TEAMS, key=lambda team: counts[team])


async def assign_teams(db: AsyncSession) -> int:
    """Put every unassigned real agent on the currently smallest team."""
    result = await db.execute(
        select(Agent)
        .where(Agent.team_name.is_(None), Agent.is_npc.is_(False))
        .order_by(Agent.id.asc())
    )
    unassigned = list(result.scalars().all())
    for agent in unassigned:
        agent.team_name = await least_populated_team(db)
        await db.flush()
        logger.info(f"Agent {agent.id} assigned to {agent.team_name}")
    return len(unassigned)


async def eligible_agents(db: AsyncSession) -> List[Agent]:
    """Active agents with a position and a team, in id order."""
    result = await db.execute(
        select(Agent)
        .where(
            Agent.status == AgentStatus.ACTIVE,
            Agent.position.is_not(None),
            Agent.team_name.is_not(None),
        )
        .order_by(Agent.id.asc())
    )
    return list(result.scalars().all())


# =============================================================================
# Season lifecycle
# =============================================================================

async def get_active_season(db: AsyncSession) -> Optional[Season]:
    result = await db.execute(
        select(Season)
        .where(Season.status == SeasonStatus.ACTIVE)
        .order_by(Season.season_num.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_latest_season(db: AsyncSession) -> Optional[Season]:
    result = await db.execute(select(Season).order_by(Season.season_num.desc()).limit(1))
    return result.scalar_one_or_none()


async def create_season(
    db: AsyncSession,
    world_model: Optional[WorldModel] = None,
    total_games: Optional[int] = None,
    rng: Optional[random.Random] = None
) -> Season:
    """
    Open the next season.

    Ensures the NPC floor, assigns teams, then creates one season stats row
    per active agent with the agent's current salary. Real agents get a
    season-start world event in their feed.
    """
    world_model = world_model or get_world_model()
    await ensure_npc_agents(db, rng=rng)
    await assign_teams(db)

    last_num = (await db.execute(select(func.max(Season.season_num)))).scalar_one()
    season_num = (last_num or 0) + 1
    season = Season(
        season_num=season_num,
        status=SeasonStatus.ACTIVE,
        games_played=0,
        total_games=total_games or SeasonConfig.TOTAL_GAMES,
    )
    db.add(season)
    await db.flush()

    result = await db.execute(
        select(Agent)
        .where(Agent.status == AgentStatus.ACTIVE, Agent.position.is_not(None))
        .order_by(Agent.id.asc())
    )
    for agent in result.scalars().all():
        salary = calculate_salary(calculate_ovr(agent.attributes(), agent.position))
        agent.salary = salary
        db.add(SeasonStats(season_id=season.id, agent_id=agent.id, salary_current=salary))

        if not agent.is_npc:
            event_text = await world_model.generate_world_event(agent)
            await log_activity(
                db, agent.id, ActivityType.EVENT,
                f"Season {season_num} tips off",
                f"A new season begins! Salary: {salary} tokens.\n{event_text}",
            )

    await db.commit()
    logger.info(f"Season {season_num} created (id={season.id}, {season.total_games} games)")
    return season


async def get_or_create_active_season(
    db: AsyncSession,
    world_model: Optional[WorldModel] = None,
    rng: Optional[random.Random] = None
) -> Season:
    season = await get_active_season(db)
    if season is not None:
        return season
    return await create_season(db, world_model=world_model, rng=rng)


# =============================================================================
# Game simulation
# =============================================================================

def pick_matchup(agents: List[Agent], rng: Optional[random.Random] = None) -> Optional[Tuple[Agent, Agent]]:
    """
    Random home agent and a random away agent from another team.

    Degrades to any other agent when everyone plays for the same team.
    """
    if len(agents) < 2:
        return None
    rng = rng or random
    home = rng.choice(agents)
    others = [a for a in agents if a.id != home.id]
    rivals = [a for a in others if a.team_name != home.team_name]
    away = rng.choice(rivals or others)
    return home, away


def npc_game_verdict(simulation: GameSimulation) -> GameVerdict:
    """Verdict for a game between two NPCs: base narrative, flat cost, no bonuses."""
    return GameVerdict(
        home_score_adjust=0,
        away_score_adjust=0,
        narrative=simulation.narrative,
        mvp="home" if simulation.home_score > simulation.away_score else "away",
        event_type=GameEventType.NORMAL,
        token_adjust=TokenAdjust(home=-TokenConfig.NPC_GAME_COST, away=-TokenConfig.NPC_GAME_COST),
    )


def final_scores(simulation: GameSimulation, verdict: GameVerdict) -> Tuple[int, int]:
    """Base score plus judge adjustment; a tie goes to the MVP's side."""
    home_score = max(0, simulation.home_score + verdict.home_score_adjust)
    away_score = max(0, simulation.away_score + verdict.away_score_adjust)
    if home_score == away_score:
        if verdict.mvp == "home":
            home_score += 1
        else:
            away_score += 1
    return home_score, away_score


async def _reserve_game_slot(db: AsyncSession, season_id: int) -> Optional[int]:
    """Claim the next game number, or None if the season is full or over."""
    result = await db.execute(
        update(Season)
        .where(
            Season.id == season_id,
            Season.status == SeasonStatus.ACTIVE,
            Season.games_played < Season.total_games,
        )
        .values(games_played=Season.games_played + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    return (await db.execute(
        select(Season.games_played).where(Season.id == season_id)
    )).scalar_one()


async def _upsert_season_stats(
    db: AsyncSession,
    season_id: int,
    agent: Agent,
    box: BoxScore,
    won: bool
) -> SeasonStats:
    result = await db.execute(
        select(SeasonStats).where(SeasonStats.season_id == season_id, SeasonStats.agent_id == agent.id)
    )
    stats = result.scalar_one_or_none()
    if stats is None:
        stats = SeasonStats(
            season_id=season_id,
            agent_id=agent.id,
            games_played=0,
            games_won=0,
            total_points=0,
            total_rebounds=0,
            total_assists=0,
            total_steals=0,
            total_blocks=0,
            avg_rating=0.0,
            salary_current=calculate_salary(calculate_ovr(agent.attributes(), agent.position)),
            tokens_earned=0,
        )
        db.add(stats)

    stats.games_played += 1
    stats.games_won += 1 if won else 0
    stats.total_points += box.points
    stats.total_rebounds += box.rebounds
    stats.total_assists += box.assists
    stats.total_steals += box.steals
    stats.total_blocks += box.blocks
    # Most recent game rating
    stats.avg_rating = float(box.rating)
    return stats


async def _apply_game_tokens(
    db: AsyncSession,
    agent: Agent,
    delta: int,
    game: Game,
    won: bool,
    season_stats: SeasonStats
) -> int:
    """
    Settle one side's token delta. Costs are capped at the balance; an
    agent left with nothing goes dormant.

    Returns:
        The amount actually applied
    """
    if delta < 0:
        delta = -min(-delta, max(agent.token_balance or 0, 0))

    if delta > 0:
        tx_type = TransactionType.REWARD
        description = f"Game {game.game_num} reward +{delta} ({'win' if won else 'performance'})"
    elif delta < 0:
        tx_type = TransactionType.SPEND
        description = f"Game {game.game_num} action cost {delta}"
    else:
        tx_type = TransactionType.EARN
        description = f"Game {game.game_num} settled even"

    await apply_token_change(db, agent, delta, tx_type, description, ReferenceType.GAME, game.id)
    season_stats.tokens_earned += delta

    if agent.token_balance <= 0 and agent.status == AgentStatus.ACTIVE:
        agent.status = AgentStatus.DORMANT
        logger.info(f"Agent {agent.id} ran out of tokens and is now dormant")
        await log_activity(
            db, agent.id, ActivityType.SYSTEM,
            "Out of tokens",
            f"{agent.nickname} has run out of tokens and sits out until the balance is restored.",
        )
    return delta


def _game_activity(
    game: Game,
    home: Agent,
    away: Agent,
    agent: Agent,
    box: BoxScore,
    won: bool,
    is_mvp: bool,
    event_type: GameEventType,
    token_change: int
) -> Tuple[str, str]:
    title = f"Game {game.game_num} {'win' if won else 'loss'}"
    if is_mvp:
        title += " ★MVP"
    if event_type in EVENT_LABELS:
        title += f" [{EVENT_LABELS[event_type]}]"

    content = (
        f"{home.team_name} {game.home_score} : {game.away_score} {away.team_name}\n"
        f"Your line: {box.points} pts {box.rebounds} reb {box.assists} ast\n"
        f"{game.narrative}"
    )
    if token_change:
        content += f"\nTokens: {token_change:+d}"
    return title, content


async def _play_game(
    db: AsyncSession,
    season: Season,
    home: Agent,
    away: Agent,
    world_model: WorldModel,
    rng: Optional[random.Random]
) -> Optional[Tuple[Game, GameSimulation]]:
    """Simulate, judge and persist one game. None if no slot was left."""
    simulation = simulate_game(
        home.attributes(), away.attributes(), home.nickname, away.nickname,
        home.luck_value, away.luck_value, rng
    )

    has_real_agent = not home.is_npc or not away.is_npc
    if has_real_agent:
        context = GameContext(
            season_num=season.season_num,
            game_num=season.games_played + 1,
            total_games=season.total_games,
        )
        verdict = await world_model.judge_game(home, away, context)
    else:
        verdict = npc_game_verdict(simulation)

    game_num = await _reserve_game_slot(db, season.id)
    if game_num is None:
        return None

    home_score, away_score = final_scores(simulation, verdict)
    home_won = home_score > away_score
    # MVP follows the final result, even when the judge named the other side
    mvp_side = "home" if home_won else "away"
    game = Game(
        season_id=season.id,
        game_num=game_num,
        home_agent_id=home.id,
        away_agent_id=away.id,
        home_score=home_score,
        away_score=away_score,
        mvp_agent_id=home.id if mvp_side == "home" else away.id,
        event_type=verdict.event_type,
        narrative=verdict.narrative if has_real_agent else simulation.narrative,
        is_completed=True,
    )
    db.add(game)
    await db.flush()

    sides = (
        (home, simulation.home_stats, home_won, verdict.token_adjust.home, verdict.home_stat_bonus, "home"),
        (away, simulation.away_stats, not home_won, verdict.token_adjust.away, verdict.away_stat_bonus, "away"),
    )
    for agent, box, won, token_delta, stat_bonus, side in sides:
        db.add(GameStats(game_id=game.id, agent_id=agent.id, **box.to_dict()))
        if won:
            agent.wins = (agent.wins or 0) + 1
        else:
            agent.losses = (agent.losses or 0) + 1
        season_stats = await _upsert_season_stats(db, season.id, agent, box, won)

        if agent.is_npc:
            continue

        applied = await _apply_game_tokens(db, agent, token_delta, game, won, season_stats)

        if stat_bonus is not None:
            current = getattr(agent, stat_bonus.attr) or 50
            setattr(agent, stat_bonus.attr, min(99, current + stat_bonus.amount))

        title, content = _game_activity(
            game, home, away, agent, box, won, mvp_side == side, verdict.event_type, applied
        )
        await log_activity(db, agent.id, ActivityType.GAME, title, content, token_change=applied)

    await db.commit()
    logger.info(
        f"Season {season.season_num} game {game_num}: {home.nickname} {home_score} - "
        f"{away_score} {away.nickname}"
    )
    return game, simulation


async def simulate_next_games(
    db: AsyncSession,
    season_id: int,
    count: Optional[int] = None,
    world_model: Optional[WorldModel] = None,
    rng: Optional[random.Random] = None
) -> int:
    """
    Simulate up to count games of a season.

    Each game is committed on its own before dialogue is generated. When the
    last game of the season is played, the season completes and salaries
    are paid.

    Returns:
        Number of games simulated by this call
    """
    count = SeasonConfig.GAMES_PER_SIMULATION if count is None else count
    world_model = world_model or get_world_model()

    result = await db.execute(
        select(Season).where(Season.id == season_id).execution_options(populate_existing=True)
    )
    season = result.scalar_one_or_none()
    if season is None or season.status != SeasonStatus.ACTIVE:
        return 0

    simulated = 0
    for _ in range(count):
        if season.games_played >= season.total_games:
            break

        agents = await eligible_agents(db)
        matchup = pick_matchup(agents, rng)
        if matchup is None:
            logger.info(f"Season {season.season_num}: fewer than two eligible agents, nothing to simulate")
            break
        home, away = matchup

        played = await _play_game(db, season, home, away, world_model, rng)
        if played is None:
            break
        game, simulation = played
        simulated += 1

        if not home.is_npc or not away.is_npc:
            try:
                await generate_game_interactions(
                    db, game, home, away,
                    simulation.home_stats.points, simulation.away_stats.points,
                    rng=rng,
                )
            except Exception as e:
                await db.rollback()
                logger.error(f"Interaction generation failed for game {game.id}, result kept: {e}")

        # A rollback above expires loaded instances
        await db.refresh(season)

    await db.refresh(season)
    if season.games_played >= season.total_games:
        await complete_season(db, season, world_model)

    return simulated


async def complete_season(db: AsyncSession, season: Season, world_model: Optional[WorldModel] = None) -> bool:
    """
    Flip a full season to COMPLETED and pay salaries.

    Only the caller whose conditional UPDATE flips the status settles.
    """
    now = datetime.utcnow()
    result = await db.execute(
        update(Season)
        .where(
            Season.id == season.id,
            Season.status == SeasonStatus.ACTIVE,
            Season.games_played >= Season.total_games,
        )
        .values(status=SeasonStatus.COMPLETED, completed_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    await settle_season_salary(db, season, world_model)
    await db.commit()
    await db.refresh(season)
    logger.info(f"Season {season.season_num} completed and settled")
    return True


# =============================================================================
# Salary settlement
# =============================================================================

async def settle_season_salary(
    db: AsyncSession,
    season: Season,
    world_model: Optional[WorldModel] = None
) -> int:
    """
    Pay every real agent's salary and bonus for a finished season.

    Must only run for the caller that completed the season; commits are
    left to the caller.

    Returns:
        Number of agents paid
    """
    world_model = world_model or get_world_model()
    result = await db.execute(
        select(SeasonStats, Agent)
        .join(Agent, Agent.id == SeasonStats.agent_id)
        .where(SeasonStats.season_id == season.id, Agent.is_npc.is_(False))
        .order_by(SeasonStats.id.asc())
    )
    rows = result.all()

    paid = 0
    for stats, agent in rows:
        try:
            settlement = await world_model.settle_season(agent, stats, season.season_num)
            base_salary = stats.salary_current
            adjusted_salary = round(base_salary * settlement.salary_multiplier)
            total = adjusted_salary + settlement.bonus_tokens

            if settlement.salary_multiplier > 1:
                change = "raise"
            elif settlement.salary_multiplier < 1:
                change = "pay cut"
            else:
                change = "unchanged"
            description = f"Season {season.season_num} salary {adjusted_salary} ({change})"
            if settlement.bonus_tokens > 0:
                description += f" + bonus {settlement.bonus_tokens}"

            await apply_token_change(
                db, agent, total, TransactionType.EARN, description,
                ReferenceType.SEASON, season.id
            )
            agent.salary = adjusted_salary
            stats.tokens_earned += total
            if agent.status == AgentStatus.DORMANT and agent.token_balance > 0:
                agent.status = AgentStatus.ACTIVE

            averages = stats.averages()
            content = (
                f"{settlement.narrative}\n\n"
                f"Season line: {stats.games_played} games, {stats.games_won} wins, "
                f"{averages['ppg']} pts {averages['rpg']} reb {averages['apg']} ast per game\n"
                f"Salary: {adjusted_salary} tokens"
            )
            if settlement.bonus_tokens > 0:
                content += f" + bonus {settlement.bonus_tokens} tokens"
            if settlement.trade_rumor:
                content += f"\n\nTrade rumor: {settlement.trade_rumor}"
            content += f"\n\nOutlook: {settlement.outlook}"

            title = f"Season {season.season_num} settlement"
            if settlement.mvp_candidate:
                title += " ★MVP candidate"
            await log_activity(db, agent.id, ActivityType.SALARY, title, content, token_change=total)
            paid += 1
        except Exception as e:
            logger.error(f"Salary settlement failed for agent {agent.id}: {type(e).__name__}: {e}")

    await db.flush()
    logger.info(f"Season {season.season_num}: salaries paid to {paid} agents")
    return paid


# =============================================================================
# Read models
# =============================================================================

async def get_season_standings(db: AsyncSession, season_id: int) -> List[Dict[str, Any]]:
    """Season stats joined with agents, best record first."""
    result = await db.execute(
        select(SeasonStats, Agent)
        .join(Agent, Agent.id == SeasonStats.agent_id)
        .where(SeasonStats.season_id == season_id, SeasonStats.games_played > 0)
        .order_by(SeasonStats.games_won.desc(), SeasonStats.total_points.desc(), SeasonStats.id.asc())
    )
    return [
        {
            **stats.to_dict(),
            "nickname": agent.nickname,
            "team_name": agent.team_name,
            "is_npc": agent.is_npc,
        }
        for stats, agent in result.all()
    ]


async def get_recent_games(db: AsyncSession, season_id: int, limit: int = 10) -> List[Game]:
    result = await db.execute(
        select(Game)
        .where(Game.season_id == season_id)
        .order_by(Game.game_num.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
