"""Unit tests for LLM utilities."""

import os
import pytest
from unittest.mock import patch

from quill.libs.llm import create_agent, llm_configured


class TestCreateAgent:
    """Test the create_agent function."""

    def test_create_agent_with_defaults(self):
        """Test creating agent with default configuration."""
        config_map = {
            "llm": {
                "api_key": "test-key",
                "organization": "test-org",
                "model": "gpt-4o-mini",
                "pydantic_ai_settings": {}
            }
        }

        with patch.dict(os.environ, {}, clear=False):
            agent = create_agent(config_map)

            assert os.environ.get('OPENAI_API_KEY') == 'test-key'
            assert os.environ.get('OPENAI_ORG_ID') == 'test-org'
        assert agent is not None

    def test_create_agent_with_model_override(self):
        """Test creating agent with a model that overrides config."""
        custom_configs = {
            "llm": {
                "api_key": "custom-key",
                "model": "gpt-4o-mini"
            }
        }

        with patch.dict(os.environ, {}, clear=False):
            agent = create_agent(configs=custom_configs, model="gpt-4o")
            assert os.environ.get('OPENAI_API_KEY') == 'custom-key'
        assert agent is not None

    def test_create_agent_with_system_prompt(self):
        """Test creating agent with custom system prompt."""
        test_configs = {"llm": {"api_key": "test-key"}}

        with patch.dict(os.environ, {}, clear=False):
            agent = create_agent(
                configs=test_configs,
                system_prompt="You are an English writing tutor."
            )
        assert agent is not None

    def test_create_agent_with_settings_and_timeout(self):
        """Settings from config and arguments merge, and the timeout is carried over."""
        test_configs = {
            "llm": {
                "api_key": "test-key",
                "timeout_seconds": 12,
                "pydantic_ai_settings": {"temperature": 0.1}
            }
        }

        with patch.dict(os.environ, {}, clear=False):
            agent = create_agent(
                configs=test_configs,
                settings_dict={"max_tokens": 1000}
            )
        assert agent is not None

    def test_create_agent_missing_api_key(self):
        """Test that missing API key raises KeyError."""
        with pytest.raises(KeyError, match="Key.*not found.*"):
            create_agent({})


class TestLlmConfigured:

    def test_configured_with_key(self):
        assert llm_configured({"llm": {"api_key": "abc"}})

    def test_not_configured_with_empty_key(self):
        assert not llm_configured({"llm": {"api_key": ""}})

    def test_not_configured_without_section(self):
        assert not llm_configured({})
