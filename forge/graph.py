"""LangGraph StateGraph for one Section Editor turn.

call_oracle -> apply_edit -> propagate_stage -> propagate_cross -> finish

Any node may set status to "failed"; routing then ends the turn. Writes
are awaited one at a time, the edited section always first. Propagated
writes that fail are logged and recorded, never retried or rolled back.
"""

import sys

from langgraph.graph import END, StateGraph

from forge.stages import STAGE_ORDER, STAGES, get_stage
from forge.state import EditTurnState, ProjectContext
from forge.utils.errors import MALFORMED, classify_failure, error_detail


def new_turn(stage: str, record_id: str, section: str, message: str,
             context: ProjectContext, propagate: bool = True) -> EditTurnState:
    """Initial state for an edit turn."""
    return {
        "stage": get_stage(stage).name,
        "record_id": record_id,
        "section": section,
        "message": message,
        "context": context,
        "propagate": propagate,
        "response": None,
        "updated_value": None,
        "status": "sending",
        "failure": None,
        "error_detail": "",
        "saved": [],
        "failed": [],
        "affected_stages": [],
    }


def _with_section(context: ProjectContext, stage: str, section: str,
                  content: str) -> ProjectContext:
    """Copy of context with one section of one record replaced."""
    record = dict(context.get(stage) or {})
    record[section] = content
    return {**context, stage: record}


def _route_after_oracle(state: EditTurnState) -> str:
    if state["status"] == "failed":
        return "end"
    return "apply_edit"


def _route_after_edit(state: EditTurnState) -> str:
    if state["status"] == "failed":
        return "end"
    if not state["propagate"]:
        return "finish"
    return "propagate_stage"


class EditTurn:
    """Nodes of the edit-turn graph, bound to their collaborators."""

    def __init__(self, oracle, api, store):
        self.oracle = oracle
        self.api = api
        self.store = store
        self.graph = self._build()

    def _build(self):
        workflow = StateGraph(EditTurnState)

        workflow.add_node("call_oracle", self.call_oracle)
        workflow.add_node("apply_edit", self.apply_edit)
        workflow.add_node("propagate_stage", self.propagate_stage)
        workflow.add_node("propagate_cross", self.propagate_cross)
        workflow.add_node("finish", self.finish)

        workflow.set_entry_point("call_oracle")

        workflow.add_conditional_edges(
            "call_oracle",
            _route_after_oracle,
            {"end": END, "apply_edit": "apply_edit"},
        )
        workflow.add_conditional_edges(
            "apply_edit",
            _route_after_edit,
            {"end": END, "finish": "finish", "propagate_stage": "propagate_stage"},
        )
        workflow.add_edge("propagate_stage", "propagate_cross")
        workflow.add_edge("propagate_cross", "finish")
        workflow.add_edge("finish", END)

        return workflow.compile()

    def run(self, state: EditTurnState) -> EditTurnState:
        return self.graph.invoke(state)

    def run_single_step(self, state: EditTurnState, node_name: str) -> EditTurnState:
        """Run a single node and return the updated state."""
        updates = getattr(self, node_name)(state)
        return {**state, **updates}

    # --- Nodes ---

    def call_oracle(self, state: EditTurnState) -> dict:
        """Single round-trip to the oracle. Failures are classified, not raised."""
        try:
            response = self.oracle.edit_section(
                state["stage"], state["record_id"], state["section"],
                state["message"], state["context"],
            )
        except Exception as exc:
            kind = classify_failure(exc)
            print(f"[Forge] Oracle call failed ({kind}): {exc!r}", file=sys.stderr)
            return {"status": "failed", "failure": kind, "error_detail": error_detail(exc)}

        if response["malformed"]:
            return {"response": response, "status": "failed", "failure": MALFORMED}
        return {"response": response}

    def apply_edit(self, state: EditTurnState) -> dict:
        """Adopt and persist the edited section, then highlight its added text."""
        response = state["response"]
        stage, section = state["stage"], state["section"]
        updates: dict = {}

        new_value = response["updatedSection"]
        if new_value is not None:
            try:
                self.api.update_record(stage, state["record_id"], {section: new_value})
            except Exception as exc:
                kind = classify_failure(exc)
                print(f"[Forge] Saving {stage}.{section} failed ({kind}): {exc!r}",
                      file=sys.stderr)
                return {"status": "failed", "failure": kind, "error_detail": error_detail(exc)}

            updates["updated_value"] = new_value
            updates["context"] = _with_section(state["context"], stage, section, new_value)
            updates["saved"] = state["saved"] + [{"stage": stage, "section": section}]

        self.store.add_highlight(stage, section, response["addedText"])
        return updates

    def _write(self, state: EditTurnState, target: str,
               record_id: str, section: str, content: str) -> bool:
        source = state["stage"] if target != state["stage"] else None
        try:
            self.api.update_record(target, record_id, {section: content}, source=source)
        except Exception as exc:
            print(f"[Forge] Propagation to {target}.{section} failed: {exc!r}. "
                  f"Keeping the edit to {state['stage']}.{state['section']}.",
                  file=sys.stderr)
            return False
        return True

    def propagate_stage(self, state: EditTurnState) -> dict:
        """Write other sections of the edited stage that the oracle changed."""
        stage = state["stage"]
        entries = state["response"]["propagation"].get(stage, {})
        context, saved, failed = state["context"], list(state["saved"]), list(state["failed"])

        for section, update in entries.items():
            if section == state["section"] or update["content"] is None:
                continue
            if self._write(state, stage, state["record_id"], section, update["content"]):
                context = _with_section(context, stage, section, update["content"])
                self.store.add_highlight(stage, section, update["addedText"])
                saved.append({"stage": stage, "section": section})
            else:
                failed.append({"stage": stage, "section": section})

        return {"context": context, "saved": saved, "failed": failed}

    def propagate_cross(self, state: EditTurnState) -> dict:
        """Write upstream/downstream sections and flag those stages as unread."""
        propagation = state["response"]["propagation"]
        context, saved, failed = state["context"], list(state["saved"]), list(state["failed"])
        affected = list(state["affected_stages"])

        for target in STAGE_ORDER:
            if target == state["stage"] or target not in propagation:
                continue
            changes = {s: u for s, u in propagation[target].items() if u["content"] is not None}
            if not changes:
                continue

            record = context.get(target)
            if not record or not record.get("id"):
                print(f"[Forge] No {target} record loaded; skipping propagation to "
                      f"{', '.join(changes)}.", file=sys.stderr)
                continue

            landed = 0
            for section, update in changes.items():
                if self._write(state, target, record["id"], section, update["content"]):
                    context = _with_section(context, target, section, update["content"])
                    self.store.add_highlight(target, section, update["addedText"])
                    saved.append({"stage": target, "section": section})
                    landed += 1
                else:
                    failed.append({"stage": target, "section": section})

            if landed:
                self.store.add_module_update(STAGES[target].module_id)
                affected.append(target)

        return {"context": context, "saved": saved, "failed": failed,
                "affected_stages": affected}

    def finish(self, state: EditTurnState) -> dict:
        return {"status": "success"}
