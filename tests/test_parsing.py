"""Tests for forge.utils.parsing: strip_fences, response normalization, invoke_with_retry."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from forge.utils.parsing import (
    invoke_with_retry,
    normalize_oracle_response,
    parse_oracle_text,
    strip_fences,
)


# --- strip_fences ---

class TestStripFences:
    def test_strip_json_fences(self):
        text = '```json\n{"key": "value"}\n```'
        assert strip_fences(text) == '{"key": "value"}'

    def test_strip_plain_fences(self):
        text = '```\n{"key": "value"}\n```'
        assert strip_fences(text) == '{"key": "value"}'

    def test_no_fences_returns_stripped(self):
        text = '  {"key": "value"}  '
        assert strip_fences(text) == '{"key": "value"}'


# --- normalize_oracle_response ---

class TestNormalizeOracleResponse:
    def test_full_response(self):
        data = {
            "reply": "Added offline support.",
            "updatedSection": "Web app that supports offline mode.",
            "addedText": ["supports offline mode"],
            "propagation": {
                "action_plan": {
                    "non_functional_requirements": {
                        "content": "RNF-006: Works offline.",
                        "addedText": ["RNF-006: Works offline."],
                    },
                    "business_logic_flow": {"content": None, "addedText": []},
                },
                "ideation": {"title": {"content": None, "addedText": []}},
            },
        }
        result = normalize_oracle_response(data)
        assert result["malformed"] is False
        assert result["updatedSection"] == "Web app that supports offline mode."
        nfr = result["propagation"]["action_plan"]["non_functional_requirements"]
        assert nfr == {"content": "RNF-006: Works offline.", "addedText": ["RNF-006: Works offline."]}
        assert result["propagation"]["ideation"]["title"]["content"] is None

    def test_defaults_for_missing_keys(self):
        result = normalize_oracle_response({"reply": "Nothing to change."})
        assert result == {
            "reply": "Nothing to change.",
            "updatedSection": None,
            "addedText": [],
            "propagation": {},
            "malformed": False,
        }

    def test_empty_updated_section_is_none(self):
        assert normalize_oracle_response({"updatedSection": ""})["updatedSection"] is None

    def test_non_string_added_text_dropped(self):
        result = normalize_oracle_response({"addedText": ["ok", 3, None, ""]})
        assert result["addedText"] == ["ok"]

    def test_stage_aliases_normalized(self):
        result = normalize_oracle_response({
            "propagation": {"actionPlan": {"business_logic_flow": {"content": "Flow", "addedText": []}}}
        })
        assert "action_plan" in result["propagation"]

    def test_unknown_stage_dropped_with_warning(self, capsys):
        result = normalize_oracle_response({"propagation": {"deployment": {"x": {"content": "y"}}}})
        assert result["propagation"] == {}
        assert "unknown stage 'deployment'" in capsys.readouterr().err

    def test_unknown_section_dropped_with_warning(self, capsys):
        result = normalize_oracle_response({
            "propagation": {"ideation": {"pricing": {"content": "1M"}, "scope": {"content": "S"}}}
        })
        assert list(result["propagation"]["ideation"]) == ["scope"]
        assert "ideation.pricing" in capsys.readouterr().err

    def test_bare_string_section_is_content(self):
        result = normalize_oracle_response({"propagation": {"ideation": {"scope": "New scope"}}})
        assert result["propagation"]["ideation"]["scope"] == {"content": "New scope", "addedText": []}

    def test_null_stage_skipped(self):
        result = normalize_oracle_response({"propagation": {"ideation": None}})
        assert result["propagation"] == {}

    def test_non_object_raises(self):
        with pytest.raises(ValueError):
            normalize_oracle_response(["not", "an", "object"])


# --- parse_oracle_text ---

class TestParseOracleText:
    def test_parses_fenced_json(self):
        text = '```json\n' + json.dumps({"reply": "hi", "updatedSection": "X"}) + '\n```'
        result = parse_oracle_text(text)
        assert result["updatedSection"] == "X"
        assert result["malformed"] is False

    def test_non_json_degrades_to_reply(self, capsys):
        result = parse_oracle_text("Sorry, I could not do that.")
        assert result["malformed"] is True
        assert result["reply"] == "Sorry, I could not do that."
        assert result["updatedSection"] is None
        assert result["propagation"] == {}
        assert "Malformed oracle response" in capsys.readouterr().err

    def test_json_array_is_malformed(self):
        assert parse_oracle_text("[1, 2]")["malformed"] is True


# --- invoke_with_retry ---

class TestInvokeWithRetry:
    def _mock_llm(self, side_effect):
        llm = MagicMock()
        llm.invoke.side_effect = side_effect
        return llm

    @patch("forge.config._config", {"llm_max_retries": 2})
    def test_succeeds_on_first_try(self):
        response = MagicMock()
        response.content = '{"ok": true}'
        llm = self._mock_llm([response])

        result = invoke_with_retry(llm, [{"role": "user", "content": "hi"}])

        assert result.content == '{"ok": true}'
        assert llm.invoke.call_count == 1

    @patch("forge.config._config", {"llm_max_retries": 2})
    def test_retries_on_connect_error(self):
        response = MagicMock()
        response.content = '{"ok": true}'
        llm = self._mock_llm([
            httpx.ConnectError("connection refused"),
            response,
        ])

        result = invoke_with_retry(llm, [{"role": "user", "content": "hi"}])

        assert result.content == '{"ok": true}'
        assert llm.invoke.call_count == 2

    @patch("forge.config._config", {"llm_max_retries": 2})
    def test_does_not_retry_on_429(self):
        response_429 = httpx.Response(429, request=httpx.Request("POST", "https://api.example.com"))
        llm = self._mock_llm([
            httpx.HTTPStatusError("rate limited", request=response_429.request, response=response_429),
        ])

        with pytest.raises(httpx.HTTPStatusError):
            invoke_with_retry(llm, [{"role": "user", "content": "hi"}])

        assert llm.invoke.call_count == 1  # one round-trip per edit turn

    @patch("forge.config._config", {"llm_max_retries": 2})
    def test_does_not_retry_on_timeout(self):
        llm = self._mock_llm([httpx.ReadTimeout("read timed out")])

        with pytest.raises(httpx.ReadTimeout):
            invoke_with_retry(llm, [{"role": "user", "content": "hi"}])

        assert llm.invoke.call_count == 1

    @patch("forge.config._config", {"llm_max_retries": 1})
    def test_raises_after_max_retries(self):
        llm = self._mock_llm([
            httpx.ConnectError("fail 1"),
            httpx.ConnectError("fail 2"),
        ])

        with pytest.raises(httpx.ConnectError):
            invoke_with_retry(llm, [{"role": "user", "content": "hi"}])

        assert llm.invoke.call_count == 2  # 1 initial + 1 retry
