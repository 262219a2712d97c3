"""Shared fixtures for the Forge test suite."""

from unittest.mock import MagicMock, patch

import pytest

from forge.propagation.store import PropagationStore


@pytest.fixture
def store():
    """Fresh, empty PropagationStore."""
    return PropagationStore()


@pytest.fixture
def idea():
    return {
        "id": "idea-1",
        "title": "StudyBuddy",
        "objective": "Help students plan exams.",
        "problem": "Students cram the night before.",
        "scope": "Web app with calendar sync.",
        "completed": True,
    }


@pytest.fixture
def action_plan():
    return {
        "id": "plan-1",
        "idea_id": "idea-1",
        "functional_requirements": "RF-001: Users can log in.",
        "non_functional_requirements": "RNF-001: Pages load in under 2s.",
        "business_logic_flow": "Login -> Dashboard.",
        "completed": False,
    }


@pytest.fixture
def architecture():
    return {
        "id": "arch-1",
        "action_plan_id": "plan-1",
        "user_stories": "As a student I want reminders.",
        "database_type": "PostgreSQL",
        "database_schema": "users(id, email)",
        "entities_relationships": "User 1-N Exam",
        "tech_stack": "Next.js, Go",
        "architecture_pattern": "Hexagonal",
        "system_architecture": "SPA + REST API",
        "completed": False,
    }


@pytest.fixture
def plan_context(idea, action_plan):
    """Idea with its Action Plan; no Architecture yet."""
    return {"ideation": idea, "action_plan": action_plan, "architecture": None}


@pytest.fixture
def mock_api():
    """External API double whose writes all succeed."""
    api = MagicMock()
    api.update_record.side_effect = lambda stage, record_id, updates, source=None: {
        "id": record_id, **updates
    }
    return api


def _make_response(updated=None, added=None, propagation=None, reply="Done."):
    """Build a normalized oracle response."""
    return {
        "reply": reply,
        "updatedSection": updated,
        "addedText": added or [],
        "propagation": propagation or {},
        "malformed": False,
    }


@pytest.fixture
def mock_oracle():
    oracle = MagicMock()
    oracle.edit_section.return_value = _make_response()
    return oracle


@pytest.fixture
def mock_config():
    """Patch the config singleton with test-friendly values."""
    test_config = {
        "oracle": "http",
        "oracle_provider": "google",
        "oracle_model": "gemini-2.0-flash",
        "oracle_temperature": 0,
        "api_base_url": "http://api.test",
        "request_timeout": 5,
        "llm_max_retries": 2,
    }
    with patch("forge.config._config", test_config):
        yield test_config


@pytest.fixture
def make_response():
    """Factory for normalized oracle responses."""
    return _make_response
