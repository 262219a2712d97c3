"""Shared parsing and LLM utilities for oracle responses."""

import json
import re
import sys

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from forge.stages import STAGES, normalize_stage_name
from forge.state import OracleResponse, SectionUpdate

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def strip_fences(text: str) -> str:
    """Strip markdown code fences from LLM output if present."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


def _clean_texts(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [t for t in value if isinstance(t, str) and t]


def _clean_content(value) -> str | None:
    return value if isinstance(value, str) and value else None


def _normalize_section_update(value) -> SectionUpdate:
    # Bare strings are accepted as complete replacement content.
    if isinstance(value, str):
        return {"content": _clean_content(value), "addedText": []}
    if not isinstance(value, dict):
        return {"content": None, "addedText": []}
    return {
        "content": _clean_content(value.get("content")),
        "addedText": _clean_texts(value.get("addedText")),
    }


def normalize_oracle_response(data) -> OracleResponse:
    """Validate and normalize an edit-section response to the expected shape.

    Missing optional keys get defaults. Unknown stages and sections in the
    propagation map are dropped with a warning. Raises ValueError if data
    is not a JSON object.
    """
    if not isinstance(data, dict):
        raise ValueError("Oracle response must be a JSON object.")

    reply = data.get("reply")
    propagation: dict[str, dict[str, SectionUpdate]] = {}

    raw_propagation = data.get("propagation") or {}
    if not isinstance(raw_propagation, dict):
        print("[Forge] Warning: 'propagation' is not an object. Ignoring it.", file=sys.stderr)
        raw_propagation = {}

    for stage_key, sections in raw_propagation.items():
        stage = normalize_stage_name(stage_key)
        if stage is None:
            print(f"[Forge] Warning: dropping propagation for unknown stage '{stage_key}'.",
                  file=sys.stderr)
            continue
        if sections is None:
            continue
        if not isinstance(sections, dict):
            print(f"[Forge] Warning: propagation for '{stage_key}' is not an object. Skipping.",
                  file=sys.stderr)
            continue

        known = STAGES[stage].sections
        target = propagation.setdefault(stage, {})
        for section, value in sections.items():
            if section not in known:
                print(f"[Forge] Warning: dropping unknown section '{stage}.{section}'.",
                      file=sys.stderr)
                continue
            target[section] = _normalize_section_update(value)

    return {
        "reply": reply if isinstance(reply, str) else "",
        "updatedSection": _clean_content(data.get("updatedSection")),
        "addedText": _clean_texts(data.get("addedText")),
        "propagation": propagation,
        "malformed": False,
    }


def malformed_response(raw: str) -> OracleResponse:
    """Degraded response: the raw model text becomes the reply, nothing else applies."""
    return {
        "reply": raw.strip(),
        "updatedSection": None,
        "addedText": [],
        "propagation": {},
        "malformed": True,
    }


def parse_oracle_text(text: str) -> OracleResponse:
    """Parse raw model output into a normalized response, degrading on bad JSON."""
    content = strip_fences(text or "")
    try:
        return normalize_oracle_response(json.loads(content))
    except (json.JSONDecodeError, ValueError) as exc:
        print(f"[Forge] Malformed oracle response: {exc}", file=sys.stderr)
        return malformed_response(text or "")


def _is_transient(exc: BaseException) -> bool:
    """Return True only when the request never reached the oracle.

    Status errors (429/503/...) are surfaced to the user instead of retried,
    so an edit turn stays at one round-trip.
    """
    return isinstance(exc, httpx.ConnectError)


def invoke_with_retry(llm, messages, max_retries: int = 2):
    """Call llm.invoke(messages), retrying with exponential backoff on connect errors."""
    from forge.config import get_config

    config = get_config()
    retries = config.get("llm_max_retries", max_retries)

    @retry(
        stop=stop_after_attempt(retries + 1),  # +1 because first attempt counts
        wait=wait_exponential(multiplier=1, min=2, max=16),
        retry=retry_if_exception(_is_transient),
        reraise=True,
        before_sleep=lambda state: print(
            f"[Forge] Connection error: {state.outcome.exception()!r}. "
            f"Retrying in {state.next_action.sleep:.0f}s "
            f"(attempt {state.attempt_number}/{retries})...",
            file=sys.stderr,
        ),
    )
    def _invoke():
        return llm.invoke(messages)

    return _invoke()
