"""LLM Oracle — turns one edit instruction into updated section content plus propagation.

Two backends share one contract, `edit_section(...) -> OracleResponse`:

- HttpOracle posts to the stage's edit-section endpoint on the External API,
  which builds the prompt and calls the model server-side.
- LlmOracle builds the prompt itself and calls the configured chat model.

Both raise on transport or HTTP status failures (the Section Editor
classifies those) and degrade to a malformed response when the model's
text is not the expected JSON.
"""

import json

from langchain_anthropic import ChatAnthropic
from langchain_google_genai import ChatGoogleGenerativeAI

from forge.config import get_config
from forge.stages import STAGE_ORDER, STAGES, context_for_prompt, get_stage
from forge.state import OracleResponse, ProjectContext
from forge.utils.parsing import invoke_with_retry, parse_oracle_text

# Request keys used by the edit-section endpoints for each stage's context.
_CONTEXT_KEYS = {
    "ideation": "idea_context",
    "action_plan": "plan_context",
    "architecture": "architecture_context",
}

SYSTEM_PROMPT = """\
You are the editing assistant of a three-stage project planner.

The project is described by three stages, in order:
{stage_list}

The user wants to change ONE section of ONE stage. Rewrite that section \
following the user's instruction, then decide whether any OTHER section, in \
the same stage or in the other stages, must change to stay consistent with \
the edit.

You MUST respond with valid JSON matching this exact schema:
{{
  "reply": "string — short conversational answer shown to the user",
  "updatedSection": "string — the complete new content of the edited section",
  "addedText": ["string — verbatim substrings of updatedSection that are new"],
  "propagation": {{
    "<stage>": {{
      "<section>": {{"content": "string or null", "addedText": ["string"]}}
    }}
  }}
}}

Rules:
- "content" is the COMPLETE replacement text of that section, never a diff.
- Use "content": null for every section that needs no change.
- Every addedText entry must appear verbatim in the content it belongs to.
- Only use the stage and section keys listed above.
- Respond ONLY with the JSON object. No markdown fences, no commentary.
"""


def _stage_list() -> str:
    lines = []
    for name in STAGE_ORDER:
        schema = STAGES[name]
        lines.append(f"- {name} ({schema.display_name}): {', '.join(schema.sections)}")
    return "\n".join(lines)


def build_user_prompt(stage: str, section: str, message: str, context: ProjectContext) -> str:
    """Construct the user prompt: full cross-stage context, then the instruction."""
    schema = get_stage(stage)
    parts = ["## Current Project"]
    for name, sections in context_for_prompt(context).items():
        parts.append(f"\n### {STAGES[name].display_name} ({name})")
        parts.append(f"```json\n{json.dumps(sections, indent=2, ensure_ascii=False)}\n```")

    parts.append(f"\n## Section Being Edited\n{schema.name}.{section}")
    parts.append(f"\n## User Instruction\n{message}")
    return "\n".join(parts)


class HttpOracle:
    """Oracle backed by the External API's edit-section endpoints."""

    def __init__(self, api):
        self.api = api

    def edit_section(self, stage: str, record_id: str, section: str, message: str,
                     context: ProjectContext) -> OracleResponse:
        payload = {"section": section, "message": message}
        for name, sections in context_for_prompt(context).items():
            payload[_CONTEXT_KEYS[name]] = sections

        text = self.api.edit_section(get_stage(stage).name, record_id, payload)
        return parse_oracle_text(text)


def _make_llm(config: dict):
    model_name = config["oracle_model"]
    temperature = config.get("oracle_temperature", 0.3)
    timeout = config.get("request_timeout", 30)
    if config.get("oracle_provider", "google") == "anthropic":
        return ChatAnthropic(model=model_name, temperature=temperature, timeout=timeout)
    return ChatGoogleGenerativeAI(model=model_name, temperature=temperature, timeout=timeout)


class LlmOracle:
    """Oracle that prompts the configured chat model directly.

    One model call per edit turn. Bad JSON is not re-prompted; the reply
    degrades to the raw model text instead.
    """

    def edit_section(self, stage: str, record_id: str, section: str, message: str,
                     context: ProjectContext) -> OracleResponse:
        llm = _make_llm(get_config())
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT.format(stage_list=_stage_list())},
            {"role": "user", "content": build_user_prompt(stage, section, message, context)},
        ]
        response = invoke_with_retry(llm, messages)
        content = response.content
        if isinstance(content, list):
            # Some chat models return content blocks.
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        return parse_oracle_text(content)


def make_oracle(api):
    """Build the oracle selected by the `oracle` config key."""
    if get_config().get("oracle", "http") == "llm":
        return LlmOracle()
    return HttpOracle(api)
