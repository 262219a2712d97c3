"""Section Editor — one conversational edit dialog for one section of one stage.

The same class serves all three stages; the stage schema decides which
sections exist and which stages sit up- and downstream.

State machine per dialog: idle -> sending -> (success | failed) -> idle.
"""

import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from forge.graph import EditTurn, new_turn
from forge.stages import STAGES, get_stage, is_locked, lock_message
from forge.state import ChatMessage, ProjectContext
from forge.utils.errors import StageLockedError, failure_message
from forge.utils.validator import validate_instruction, validate_section


class EditorStatus(Enum):
    IDLE = "idle"
    SENDING = "sending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class EditResult:
    status: EditorStatus
    reply: str = ""
    updated_value: str | None = None
    saved: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)
    affected_stages: list[str] = field(default_factory=list)
    failure: str | None = None


def console_notify(level: str, message: str) -> None:
    """Default notifier: transient notices go to stderr."""
    print(f"[Forge] {level.upper()}: {message}", file=sys.stderr)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SectionEditor:
    """Drive edit turns for one stage record.

    Args:
        stage: Stage name or alias of the record being edited.
        record_id: Id of that record on the External API.
        context: Currently loaded records of all three stages.
        oracle: Object with edit_section(stage, record_id, section, message, context).
        api: StageApiClient (or anything with update_record).
        store: PropagationStore shared by the whole session.
        notify: Callable(level, message) for transient notifications.
        propagate: Apply the oracle's propagation map (default True).
    """

    def __init__(self, stage: str, record_id: str, context: ProjectContext, oracle, api,
                 store, notify=console_notify, propagate: bool = True):
        self.schema = get_stage(stage)
        self.record_id = record_id
        self.context = context
        self.api = api
        self.store = store
        self.notify = notify
        self.propagate = propagate
        self.turn = EditTurn(oracle, api, store)

        self.status = EditorStatus.IDLE
        self.section: str | None = None
        self.updated_value = ""
        self.messages: list[ChatMessage] = []

    @property
    def is_open(self) -> bool:
        return self.section is not None

    def _check_lock(self) -> None:
        if is_locked(self.schema.name, self.context):
            message = lock_message(self.schema.name)
            self.notify("error", message)
            raise StageLockedError(self.schema.name, message)

    def open(self, section: str) -> None:
        """Open the dialog on a section. Raises StageLockedError on a locked stage."""
        validate_section(section, self.schema.sections)
        self._check_lock()

        record = self.context.get(self.schema.name) or {}
        self.section = section
        self.updated_value = record.get(section) or ""
        self.messages = []
        self.status = EditorStatus.IDLE

    def close(self) -> None:
        self.section = None

    def send(self, message: str) -> EditResult:
        """Run one edit turn: one oracle call, then the writes it implies."""
        if not self.is_open:
            raise RuntimeError("Open a section before sending a message.")
        if self.status is EditorStatus.SENDING:
            raise RuntimeError("A request is already in flight.")
        message = validate_instruction(message)
        self._check_lock()

        self.messages.append({"role": "user", "content": message, "timestamp": _now()})
        self.status = EditorStatus.SENDING

        final = self.turn.run(new_turn(
            self.schema.name, self.record_id, self.section, message,
            self.context, propagate=self.propagate,
        ))
        self.context = final["context"]

        response = final["response"]
        reply = response["reply"] if response else ""
        if reply:
            self.messages.append({"role": "assistant", "content": reply, "timestamp": _now()})

        if final["status"] == "success":
            self.status = EditorStatus.SUCCESS
            if final["updated_value"] is not None:
                self.updated_value = final["updated_value"]
            if final["affected_stages"]:
                names = ", ".join(STAGES[s].display_name for s in final["affected_stages"])
                self.notify("success", f"Changes propagated to: {names}")
        else:
            self.status = EditorStatus.FAILED
            self.notify("error", failure_message(final["failure"], final["error_detail"]))

        result = EditResult(
            status=self.status,
            reply=reply,
            updated_value=final["updated_value"],
            saved=final["saved"],
            failed=final["failed"],
            affected_stages=final["affected_stages"],
            failure=final["failure"],
        )
        self.status = EditorStatus.IDLE
        return result

    def save(self) -> None:
        """Persist the dialog's current value ("apply changes") and close it."""
        if not self.is_open:
            raise RuntimeError("Open a section before saving.")
        self._check_lock()
        self.api.update_record(self.schema.name, self.record_id, {self.section: self.updated_value})
        record = dict(self.context.get(self.schema.name) or {})
        record[self.section] = self.updated_value
        self.context = {**self.context, self.schema.name: record}
        self.notify("success", "Section updated successfully")
        self.close()
