"""Adjacency strategy chain: reasoning oracle first, geometric fallback second."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from loguru import logger

from roomgraph.adjacency.agent import AgentOutcome, AgentState, FailureReason, run_adjacency_agent
from roomgraph.adjacency.geometric import AdjacencyThresholds, detect_adjacency_geometric, resolve_thresholds
from roomgraph.adjacency.oracle import ReasoningOracle
from roomgraph.schemas import AdjacencyRelation, UnifiedRoom
from roomgraph.settings import Settings, get_settings


@dataclass
class AdjacencyResolution:
    relations: List[AdjacencyRelation] = field(default_factory=list)
    method: str = "geometric"
    failure: Optional[FailureReason] = None
    agent: Optional[AgentOutcome] = None


async def _run_oracle(
    rooms: Sequence[UnifiedRoom],
    oracle: ReasoningOracle,
    settings: Settings,
) -> AgentOutcome:
    timeout = settings.adjacency.oracle_timeout_seconds
    try:
        return await asyncio.wait_for(
            run_adjacency_agent(
                rooms,
                oracle,
                max_iterations=settings.oracle.max_iterations,
                history_window=settings.oracle.history_window,
                nearby_radius_px=settings.adjacency.nearby_radius_px,
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("Adjacency oracle timed out after {}s", timeout)
        return AgentOutcome(
            state=AgentState.FAILED,
            failure=FailureReason.TIMEOUT,
            error=f"timed out after {timeout}s",
        )


async def resolve_adjacency(
    rooms: Sequence[UnifiedRoom],
    oracle: Optional[ReasoningOracle] = None,
    *,
    synthetic: Optional[bool] = None,
    settings: Optional[Settings] = None,
    thresholds: Optional[AdjacencyThresholds] = None,
) -> AdjacencyResolution:
    """Resolve shared walls, falling back to geometry whenever the oracle fails.

    Never raises; the worst case is an empty relation list.
    """
    settings = settings or get_settings()
    if len(rooms) < 2:
        return AdjacencyResolution()
    if synthetic is None:
        synthetic = any(room.synthetic for room in rooms)

    agent_outcome: Optional[AgentOutcome] = None
    if oracle is not None and settings.adjacency.use_oracle:
        logger.info("Resolving adjacency for {} rooms with the reasoning oracle", len(rooms))
        agent_outcome = await _run_oracle(rooms, oracle, settings)
        if agent_outcome.succeeded:
            return AdjacencyResolution(relations=agent_outcome.relations, method="agent", agent=agent_outcome)
        logger.warning(
            "Oracle adjacency failed ({}), using geometric fallback",
            agent_outcome.failure.value if agent_outcome.failure else "unknown",
        )

    if thresholds is None:
        thresholds = resolve_thresholds(synthetic, settings)
    relations = detect_adjacency_geometric(rooms, thresholds)
    return AdjacencyResolution(
        relations=relations,
        method="geometric",
        failure=agent_outcome.failure if agent_outcome else None,
        agent=agent_outcome,
    )
