"""Entry point: loads a project, runs one Section Editor turn, prints the result."""

import sys

from forge.agents.oracle import make_oracle
from forge.api import StageApiClient
from forge.editor import EditorStatus, SectionEditor
from forge.propagation.highlight import render_terminal, split_highlights
from forge.propagation.store import PropagationStore
from forge.stages import get_stage, stage_steps
from forge.utils.errors import StageLockedError
from forge.utils.validator import validate_instruction

USAGE = "Usage: forge-edit [--no-propagation] <stage> <record_id> <section> [message...]"


def run(stage: str, record_id: str, section: str, message: str,
        propagate: bool = True) -> int:
    """Run one edit turn against the configured External API.

    Returns a process exit code: 0 on success, 1 on a failed turn,
    2 when the stage is locked.
    """
    schema = get_stage(stage)
    message = validate_instruction(message)
    store = PropagationStore()

    with StageApiClient() as api:
        context = api.load_context(schema.name, record_id)
        editor = SectionEditor(schema.name, record_id, context, make_oracle(api), api,
                               store, propagate=propagate)
        try:
            editor.open(section)
        except StageLockedError:
            return 2

        result = editor.send(message)

    if result.reply:
        print(f"\n{result.reply}\n")

    fragments = split_highlights(editor.updated_value, schema.name, section, store)
    print(f"--- {schema.display_name} / {section} ---")
    print(render_terminal(fragments))

    for entry in result.saved:
        print(f"[Forge] Saved {entry['stage']}.{entry['section']}")
    for entry in result.failed:
        print(f"[Forge] Not saved: {entry['stage']}.{entry['section']}")

    pending = [step.display_name for step in stage_steps(editor.context, store) if step.has_update]
    if pending:
        print(f"[Forge] Unread updates: {', '.join(pending)}")

    return 0 if result.status is EditorStatus.SUCCESS else 1


def main() -> None:
    """CLI entry point. The message comes from trailing arguments or stdin."""
    args = sys.argv[1:]
    propagate = True

    if "--no-propagation" in args:
        propagate = False
        args.remove("--no-propagation")

    if len(args) < 3:
        print(USAGE, file=sys.stderr)
        sys.exit(2)

    stage, record_id, section, *rest = args
    if rest:
        message = " ".join(rest)
    else:
        print("Describe the change (Ctrl+D / Ctrl+Z to submit):")
        message = sys.stdin.read()

    sys.exit(run(stage, record_id, section, message, propagate=propagate))


if __name__ == "__main__":
    main()
