"""
Adjacency Agent Loop

Multi-turn tool-calling conversation with the reasoning oracle, modelled as an
explicit state machine::

    awaiting_oracle -> executing_tools -> awaiting_oracle -> ... -> done
                   \\-> failed(timeout | malformed | error)

The transcript is an immutable tuple rebuilt on every turn and trimmed to a
bounded window before each call, so per-call latency stays flat no matter how
many turns have elapsed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from roomgraph.adjacency.oracle import OracleResponse, ReasoningOracle
from roomgraph.exceptions import OracleError, OracleMalformedOutputError, OracleTimeoutError
from roomgraph.schemas import AdjacencyRelation, UnifiedRoom
from roomgraph.spatial.tools import TOOL_DEFINITIONS, SpatialTools

Message = Dict[str, Any]
Transcript = Tuple[Message, ...]


class AgentState(str, Enum):
    AWAITING_ORACLE = "awaiting_oracle"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"


class FailureReason(str, Enum):
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    ERROR = "error"


@dataclass
class AgentOutcome:
    state: AgentState
    relations: List[AdjacencyRelation] = field(default_factory=list)
    failure: Optional[FailureReason] = None
    iterations: int = 0
    tool_calls: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is AgentState.DONE


SYSTEM_PROMPT = """You are a spatial analysis agent that determines which rooms in a floor plan share walls.

You have three tools:
1. list_nearby_rooms - find candidate neighbours of a room
2. check_edge_distance - measure the gap between two rooms along one edge
3. get_overlap_percentage - confirm two rooms are aligned along an axis

Procedure:
1. For each room, call list_nearby_rooms (about 50px radius).
2. For each candidate, call check_edge_distance in the reported direction.
3. Rooms are adjacent only when the edge distance is within about 15px (it may be slightly negative)
   AND the overlap on the perpendicular axis is above 50%.
4. Report each shared wall once.

Direction semantics: north = room2 is above room1, south = below, east = right, west = left.

When finished, reply with ONLY a JSON array, no other text:
[{"room1": "<id>", "room2": "<id>", "edge": "north|south|east|west"}]"""


def room_summary(rooms: Sequence[UnifiedRoom]) -> str:
    lines = []
    for room in rooms:
        bbox = room.bbox
        lines.append(
            f"- {room.id} ({room.name}): centroid ({room.centroid.x:.0f}, {room.centroid.y:.0f}), "
            f"bbox x={bbox.x:.0f} y={bbox.y:.0f} w={bbox.width:.0f} h={bbox.height:.0f}, "
            f"size {room.width:.2f}m x {room.depth:.2f}m"
        )
    return "\n".join(lines)


def initial_transcript(rooms: Sequence[UnifiedRoom]) -> Transcript:
    prompt = (
        f"Analyze adjacency for these {len(rooms)} rooms. Pixel coordinates, y grows downward.\n\n"
        f"{room_summary(rooms)}\n\n"
        "Use the tools to verify every adjacency, then return the JSON array."
    )
    return ({"role": "user", "content": prompt},)


def trim_history(messages: Transcript, window: int) -> Transcript:
    """Keep the opening user message plus the last ``window`` messages.

    The kept tail always starts at an assistant turn so tool results are never
    separated from the tool calls they answer.
    """
    if len(messages) <= window + 1:
        return messages
    start = len(messages) - window
    while start < len(messages) and messages[start].get("role") != "assistant":
        start += 1
    if start >= len(messages):
        return messages[:1]
    return (messages[0],) + tuple(messages[start:])


def _parse_relation_array(text: str) -> List[Dict[str, Any]]:
    decoder = json.JSONDecoder()
    index = text.find("[")
    while index != -1:
        try:
            value, _ = decoder.raw_decode(text, index)
        except ValueError:
            value = None
        if isinstance(value, list):
            return value
        index = text.find("[", index + 1)
    raise OracleMalformedOutputError("No JSON array in oracle answer", {"answer": text[:200]})


def normalize_relations(raw: Sequence[Any], room_ids: Sequence[str]) -> List[AdjacencyRelation]:
    """Drop unknown ids and self-pairs; keep the first report of each unordered pair."""
    known = set(room_ids)
    seen: set[frozenset[str]] = set()
    relations: List[AdjacencyRelation] = []
    for item in raw:
        try:
            relation = AdjacencyRelation.model_validate(item)
        except PydanticValidationError:
            logger.debug("Ignoring malformed relation {!r}", item)
            continue
        if relation.room1_id not in known or relation.room2_id not in known:
            logger.debug("Ignoring relation with unknown room: {} / {}", relation.room1_id, relation.room2_id)
            continue
        if relation.room1_id == relation.room2_id or relation.pair in seen:
            continue
        seen.add(relation.pair)
        relations.append(relation)
    return relations


def _execute_tools(response: OracleResponse, tools: SpatialTools, default_radius: float) -> Message:
    results = []
    for call in response.tool_calls:
        logger.debug("Tool call {}({})", call.name, call.input)
        try:
            content = json.dumps(tools.execute(call.name or "", call.input, default_radius))
            results.append({"type": "tool_result", "tool_use_id": call.id, "content": content})
        except (KeyError, ValueError, TypeError) as exc:
            results.append(
                {"type": "tool_result", "tool_use_id": call.id, "content": f"Error: {exc}", "is_error": True}
            )
    return {"role": "user", "content": results}


async def run_adjacency_agent(
    rooms: Sequence[UnifiedRoom],
    oracle: ReasoningOracle,
    *,
    max_iterations: int = 15,
    history_window: int = 8,
    nearby_radius_px: float = 50.0,
) -> AgentOutcome:
    """Drive the oracle until it answers with a relation array or gives up.

    Never raises for oracle problems; failures come back as
    ``AgentOutcome(state=FAILED)``. Timeouts are enforced by the caller.
    """
    tools = SpatialTools(rooms)
    transcript = initial_transcript(rooms)
    outcome = AgentOutcome(state=AgentState.AWAITING_ORACLE)

    while outcome.iterations < max_iterations:
        outcome.iterations += 1
        try:
            response = await oracle.create_message(
                trim_history(transcript, history_window), TOOL_DEFINITIONS, system=SYSTEM_PROMPT
            )
        except OracleTimeoutError as exc:
            return _failed(outcome, FailureReason.TIMEOUT, exc.message)
        except OracleMalformedOutputError as exc:
            return _failed(outcome, FailureReason.MALFORMED, exc.message)
        except OracleError as exc:
            return _failed(outcome, FailureReason.ERROR, exc.message)

        transcript = transcript + (response.to_message(),)
        calls = response.tool_calls
        logger.debug(
            "Agent iteration {}: stop_reason={}, {} tool call(s)", outcome.iterations, response.stop_reason, len(calls)
        )

        if calls:
            outcome.state = AgentState.EXECUTING_TOOLS
            outcome.tool_calls += len(calls)
            transcript = transcript + (_execute_tools(response, tools, nearby_radius_px),)
            outcome.state = AgentState.AWAITING_ORACLE
            continue

        if response.stop_reason == "tool_use":
            return _failed(outcome, FailureReason.MALFORMED, "tool_use stop without tool calls")

        try:
            raw = _parse_relation_array(response.text)
        except OracleMalformedOutputError as exc:
            return _failed(outcome, FailureReason.MALFORMED, exc.message)
        relations = normalize_relations(raw, [room.id for room in rooms])
        if not relations:
            return _failed(outcome, FailureReason.MALFORMED, "oracle returned no usable relations")

        outcome.state = AgentState.DONE
        outcome.relations = relations
        logger.info(
            "Adjacency agent finished after {} iteration(s), {} tool call(s): {} relations",
            outcome.iterations,
            outcome.tool_calls,
            len(relations),
        )
        return outcome

    return _failed(outcome, FailureReason.ERROR, f"no answer after {max_iterations} iterations")


def _failed(outcome: AgentOutcome, reason: FailureReason, message: str) -> AgentOutcome:
    logger.warning("Adjacency agent failed ({}): {}", reason.value, message)
    outcome.state = AgentState.FAILED
    outcome.failure = reason
    outcome.error = message
    return outcome
