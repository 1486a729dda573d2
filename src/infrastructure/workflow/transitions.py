"""Pipeline nodes and the transition table between them.

Each source node has an ordered list of ``(predicate, target)`` rows; the first
predicate that holds picks the next node. ``next_node`` is pure so routing can
be tested without building the graph.
"""

from collections.abc import Callable
from enum import Enum

from src.domain.entities.session_state import SessionState

MAX_REFINEMENT_ITERATIONS = 5
RESEARCH_CONFIDENCE_THRESHOLD = 0.5


class PipelineNode(str, Enum):
    ANALYZE_INTENT = "analyze_intent"
    PROVIDE_HELP = "provide_help"
    RESEARCH = "research"
    ENSEMBLE = "ensemble"
    CLARIFICATION = "clarification"
    ENV_COLLECTION = "env_collection"
    REFINEMENT = "refinement"
    AWAIT_USER = "await_user"
    HANDLE_ERROR = "handle_error"
    END = "__end__"


Predicate = Callable[[SessionState], bool]


def has_error(state: SessionState) -> bool:
    return bool(state.get("error"))


def intent_is(*kinds: str) -> Predicate:
    def check(state: SessionState) -> bool:
        intent = state.get("intent")
        return intent is not None and intent.kind in kinds

    return check


def needs_input(state: SessionState) -> bool:
    return bool(state.get("needs_user_input"))


def research_confident(state: SessionState) -> bool:
    research = state.get("research")
    return research is not None and research.confidence > RESEARCH_CONFIDENCE_THRESHOLD


def no_ensemble_yet(state: SessionState) -> bool:
    return state.get("ensemble") is None


def is_complete(state: SessionState) -> bool:
    return bool(state.get("is_complete"))


def iterations_left(state: SessionState) -> bool:
    return (state.get("refinement_iteration") or 0) < MAX_REFINEMENT_ITERATIONS


def always(state: SessionState) -> bool:
    return True


TRANSITIONS: dict[PipelineNode, list[tuple[Predicate, PipelineNode]]] = {
    PipelineNode.ANALYZE_INTENT: [
        (has_error, PipelineNode.HANDLE_ERROR),
        (intent_is("help"), PipelineNode.PROVIDE_HELP),
        (intent_is("env_response"), PipelineNode.ENV_COLLECTION),
        (intent_is("unclear"), PipelineNode.AWAIT_USER),
        (always, PipelineNode.RESEARCH),
    ],
    PipelineNode.RESEARCH: [
        (has_error, PipelineNode.HANDLE_ERROR),
        (research_confident, PipelineNode.ENSEMBLE),
        (always, PipelineNode.CLARIFICATION),
    ],
    PipelineNode.ENSEMBLE: [
        (has_error, PipelineNode.HANDLE_ERROR),
        (always, PipelineNode.CLARIFICATION),
    ],
    PipelineNode.CLARIFICATION: [
        (has_error, PipelineNode.HANDLE_ERROR),
        (needs_input, PipelineNode.AWAIT_USER),
        (no_ensemble_yet, PipelineNode.ENSEMBLE),
        (always, PipelineNode.ENV_COLLECTION),
    ],
    PipelineNode.ENV_COLLECTION: [
        (has_error, PipelineNode.HANDLE_ERROR),
        (needs_input, PipelineNode.AWAIT_USER),
        (always, PipelineNode.REFINEMENT),
    ],
    PipelineNode.REFINEMENT: [
        (has_error, PipelineNode.HANDLE_ERROR),
        (is_complete, PipelineNode.END),
        (iterations_left, PipelineNode.REFINEMENT),
        (always, PipelineNode.END),
    ],
    PipelineNode.AWAIT_USER: [(always, PipelineNode.END)],
    PipelineNode.PROVIDE_HELP: [(always, PipelineNode.END)],
    PipelineNode.HANDLE_ERROR: [(always, PipelineNode.END)],
}


def next_node(source: PipelineNode, state: SessionState) -> PipelineNode:
    for predicate, target in TRANSITIONS.get(source, []):
        if predicate(state):
            return target
    return PipelineNode.END


def targets_of(source: PipelineNode) -> list[PipelineNode]:
    """Distinct possible targets, in table order."""
    seen: dict[PipelineNode, None] = {}
    for _, target in TRANSITIONS[source]:
        seen.setdefault(target, None)
    return list(seen)
