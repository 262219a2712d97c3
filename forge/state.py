"""Record and state shapes shared across the propagation engine."""

from typing import Literal, TypedDict

StageName = Literal["ideation", "action_plan", "architecture"]
HighlightColor = Literal["green", "yellow", "none"]


class IdeaRecord(TypedDict, total=False):
    id: str
    title: str
    objective: str
    problem: str
    scope: str
    completed: bool


class ActionPlanRecord(TypedDict, total=False):
    id: str
    idea_id: str  # Parent Idea.
    functional_requirements: str
    non_functional_requirements: str
    business_logic_flow: str
    completed: bool


class ArchitectureRecord(TypedDict, total=False):
    id: str
    action_plan_id: str  # Parent ActionPlan.
    user_stories: str
    database_type: str
    database_schema: str
    entities_relationships: str
    tech_stack: str
    architecture_pattern: str
    system_architecture: str
    completed: bool


class ProjectContext(TypedDict):
    ideation: IdeaRecord | None
    action_plan: ActionPlanRecord | None
    architecture: ArchitectureRecord | None


class HighlightedItem(TypedDict):
    text: str  # Verbatim substring added to a section.
    generation: int  # Generation at which it was registered.


class PropagationState(TypedDict):
    modules_with_updates: list[int]  # Stage ids with unseen edits, insertion order.
    highlights: dict[str, dict[str, list[HighlightedItem]]]  # stage -> section -> items
    current_generation: int


class Fragment(TypedDict):
    text: str
    color: HighlightColor


class SectionUpdate(TypedDict):
    content: str | None  # None means "no change needed".
    addedText: list[str]


class OracleResponse(TypedDict):
    reply: str
    updatedSection: str | None
    addedText: list[str]
    propagation: dict[str, dict[str, SectionUpdate]]
    malformed: bool  # True when the model output could not be parsed.


class ChatMessage(TypedDict):
    role: Literal["user", "assistant"]
    content: str
    timestamp: str  # ISO-8601, UTC.


class EditTurnState(TypedDict):
    stage: StageName
    record_id: str
    section: str
    message: str
    context: ProjectContext
    propagate: bool
    response: OracleResponse | None
    updated_value: str | None
    status: Literal["sending", "success", "failed"]
    failure: str | None  # FailureKind when status is "failed".
    error_detail: str
    saved: list[dict]  # [{"stage": ..., "section": ...}] writes that landed.
    failed: list[dict]  # Propagated writes that did not.
    affected_stages: list[str]  # Other stages that received propagated content.
