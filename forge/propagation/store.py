"""Propagation Store: what changed recently, and where.

Single-writer state container shared by every section card of every stage.
State is replaced, never mutated in place, on each change; listeners
registered with subscribe() receive the new state after every effective
mutation.
"""

from collections.abc import Callable

from forge.stages import STAGE_ORDER, get_stage
from forge.state import HighlightColor, HighlightedItem, PropagationState

Listener = Callable[[PropagationState], None]


def initial_state() -> PropagationState:
    return {
        "modules_with_updates": [],
        "highlights": {name: {} for name in STAGE_ORDER},
        "current_generation": 0,
    }


class PropagationStore:
    def __init__(self):
        self._state = initial_state()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> PropagationState:
        """Current state. Treat as read-only."""
        return self._state

    @property
    def current_generation(self) -> int:
        return self._state["current_generation"]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _commit(self, new_state: PropagationState) -> None:
        self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)

    # --- Unread markers ---

    def add_module_update(self, module_id: int) -> None:
        if module_id in self._state["modules_with_updates"]:
            return
        self._commit({
            **self._state,
            "modules_with_updates": self._state["modules_with_updates"] + [module_id],
        })

    def clear_module_update(self, module_id: int) -> None:
        if module_id not in self._state["modules_with_updates"]:
            return
        self._commit({
            **self._state,
            "modules_with_updates": [
                m for m in self._state["modules_with_updates"] if m != module_id
            ],
        })

    # --- Highlights ---

    def items(self, stage: str, section: str) -> list[HighlightedItem]:
        """Registered items for (stage, section), oldest first."""
        return self._state["highlights"][get_stage(stage).name].get(section, [])

    def add_highlight(self, stage: str, section: str, texts: list[str]) -> None:
        """Register newly added text for a section under a fresh generation.

        An empty list (or one holding only empty strings) changes nothing,
        including the generation counter.
        """
        stage = get_stage(stage).name
        texts = [t for t in texts if isinstance(t, str) and t]
        if not texts:
            return

        generation = self._state["current_generation"] + 1
        new_items = [{"text": t, "generation": generation} for t in texts]

        stage_highlights = self._state["highlights"][stage]
        highlights = {
            **self._state["highlights"],
            stage: {
                **stage_highlights,
                section: stage_highlights.get(section, []) + new_items,
            },
        }
        self._commit({
            **self._state,
            "highlights": highlights,
            "current_generation": generation,
        })

    def increment_generation(self) -> None:
        self._commit({
            **self._state,
            "current_generation": self._state["current_generation"] + 1,
        })

    def find_item(self, stage: str, section: str, text: str) -> HighlightedItem | None:
        """Find the registered item that best matches text.

        Priority: exact text match, then the longest item that contains or
        is contained in text. Ties go to the most recent generation.
        """
        candidates = [
            item for item in self.items(stage, section)
            if item["text"] in text or text in item["text"]
        ]
        if not candidates:
            return None
        return max(
            candidates,
            key=lambda i: (i["text"] == text, len(i["text"]), i["generation"]),
        )

    def get_highlight_color(self, stage: str, section: str, text: str) -> HighlightColor:
        item = self.find_item(stage, section, text)
        if item is None:
            return "none"

        diff = self._state["current_generation"] - item["generation"]
        if diff == 0:
            return "green"
        if diff == 1:
            return "yellow"
        return "none"

    def clear_all(self) -> None:
        self._commit(initial_state())
