"""Stage schemas: the three planning stages as data, plus lock and navigation rules.

One descriptor per stage drives the generic Section Editor: which sections
exist, where records live on the External API, and which stage sits
upstream/downstream in the ownership chain (Idea <- ActionPlan <- Architecture).
"""

from dataclasses import dataclass

from forge.state import ProjectContext

IDEATION = 1
ACTION_PLAN = 2
ARCHITECTURE = 3


@dataclass(frozen=True)
class StageSchema:
    name: str
    module_id: int
    display_name: str
    sections: tuple[str, ...]
    resource_path: str
    upstream: str | None = None
    downstream: str | None = None
    # Key on the record that points at its parent record.
    parent_key: str | None = None
    # Endpoint that returns this stage's record for a given parent id.
    by_parent_path: str | None = None

    @property
    def edit_path(self) -> str:
        return self.resource_path + "/edit-section"

    @property
    def messages_path(self) -> str:
        return self.resource_path + "/messages"


STAGES: dict[str, StageSchema] = {
    "ideation": StageSchema(
        name="ideation",
        module_id=IDEATION,
        display_name="Ideation",
        sections=("title", "objective", "problem", "scope"),
        resource_path="/ideation/ideas/{id}",
        downstream="action_plan",
    ),
    "action_plan": StageSchema(
        name="action_plan",
        module_id=ACTION_PLAN,
        display_name="Action Plan",
        sections=(
            "functional_requirements",
            "non_functional_requirements",
            "business_logic_flow",
        ),
        resource_path="/action-plan/{id}",
        upstream="ideation",
        downstream="architecture",
        parent_key="idea_id",
        by_parent_path="/action-plan/by-idea/{id}",
    ),
    "architecture": StageSchema(
        name="architecture",
        module_id=ARCHITECTURE,
        display_name="Architecture",
        sections=(
            "user_stories",
            "database_type",
            "database_schema",
            "entities_relationships",
            "tech_stack",
            "architecture_pattern",
            "system_architecture",
        ),
        resource_path="/architecture/{id}",
        upstream="action_plan",
        parent_key="action_plan_id",
        by_parent_path="/architecture/by-action-plan/{id}",
    ),
}

STAGE_ORDER = ("ideation", "action_plan", "architecture")

# Map common spelling deviations (mostly from model output) to stage names
_STAGE_ALIASES = {
    "idea": "ideation",
    "ideas": "ideation",
    "ideacion": "ideation",
    "ideación": "ideation",
    "plan": "action_plan",
    "actionplan": "action_plan",
    "action-plan": "action_plan",
    "action plan": "action_plan",
    "plan_de_accion": "action_plan",
    "arch": "architecture",
    "arquitectura": "architecture",
}


def normalize_stage_name(name: str) -> str | None:
    """Return the canonical stage name for name or an alias, None if unknown."""
    if not isinstance(name, str):
        return None
    key = name.strip().lower()
    if key in STAGES:
        return key
    return _STAGE_ALIASES.get(key)


def get_stage(name: str | int) -> StageSchema:
    """Resolve a stage by name, alias or module id.

    Raises ValueError for anything that does not name one of the three stages.
    """
    if isinstance(name, int):
        for schema in STAGES.values():
            if schema.module_id == name:
                return schema
        raise ValueError(f"Unknown stage id {name}. Must be one of: 1, 2, 3")

    canonical = normalize_stage_name(name)
    if canonical is None:
        raise ValueError(f"Unknown stage '{name}'. Must be one of: {list(STAGES)}")
    return STAGES[canonical]


def empty_context() -> ProjectContext:
    return {"ideation": None, "action_plan": None, "architecture": None}


def is_locked(stage: str, context: ProjectContext) -> bool:
    """True once a downstream record has been derived from this stage's record."""
    schema = get_stage(stage)
    if schema.downstream is None:
        return False
    return bool(context.get(schema.downstream))


def lock_message(stage: str) -> str:
    schema = get_stage(stage)
    if schema.downstream is None:
        return ""
    downstream = STAGES[schema.downstream].display_name
    # Both downstream names start with a vowel.
    return (
        f"You cannot edit the {schema.display_name} because an "
        f"{downstream} based on it already exists."
    )


def context_for_prompt(context: ProjectContext) -> dict[str, dict[str, str]]:
    """Strip records down to their section text, keyed by stage name."""
    result = {}
    for name in STAGE_ORDER:
        record = context.get(name)
        if not record:
            continue
        result[name] = {s: record.get(s) or "" for s in STAGES[name].sections}
    return result


# --- Stage navigation ---


@dataclass(frozen=True)
class StageStep:
    id: int
    name: str
    display_name: str
    record_id: str | None
    completed: bool
    available: bool
    has_update: bool


def stage_steps(context: ProjectContext, store) -> list[StageStep]:
    """Build the stepper entries for the three stages.

    Ideation is always available; each later stage opens once the previous
    record is completed. has_update mirrors the store's unread markers.
    """
    pending = set(store.state["modules_with_updates"])
    steps = []
    previous_completed = True
    for name in STAGE_ORDER:
        schema = STAGES[name]
        record = context.get(name) or {}
        completed = bool(record.get("completed"))
        steps.append(StageStep(
            id=schema.module_id,
            name=name,
            display_name=schema.display_name,
            record_id=record.get("id"),
            completed=completed,
            available=previous_completed,
            has_update=schema.module_id in pending,
        ))
        previous_completed = completed
    return steps


def visit_stage(stage: str | int, store) -> None:
    """Mark a stage as seen, clearing its unread marker."""
    store.clear_module_update(get_stage(stage).module_id)
