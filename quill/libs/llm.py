"""LLM utilities for creating and configuring the essay analysis agent."""

import logging
import os
from typing import Any, Dict, Optional

from pydantic_ai import Agent
from pydantic_ai.models.openai import OpenAIResponsesModel, OpenAIResponsesModelSettings

from quill.libs.config_loader import ConfigType, get_config

# Keep httpx request logging out of grading output
logging.getLogger("httpx").setLevel(logging.WARNING)

DEFAULT_MODEL = "gpt-4o-mini"


def llm_configured(configs: ConfigType) -> bool:
    """True when an API key is present in the llm config section."""
    return bool(get_config("llm.api_key", configs, default=None))


def create_agent(configs: ConfigType,
                 model: Optional[str] = None,
                 settings_dict: Optional[Dict[str, Any]] = None,
                 system_prompt: Optional[str] = None) -> Agent:
    """
    Create a pydantic-ai Agent configured with OpenAI models.

    Args:
        configs: Configuration dictionary (required)
        model: Model to use (overrides config value)
        settings_dict: Pydantic AI settings dict (overrides config values)
        system_prompt: System prompt for the agent (optional)

    Returns:
        Configured Agent

    Raises:
        KeyError: If the API key is not found in config
    """
    api_key = get_config("llm.api_key", configs)
    organization = get_config("llm.organization", configs, default=None)
    model = model or get_config("llm.model", configs, default=DEFAULT_MODEL)
    base_settings = get_config("llm.pydantic_ai_settings", configs, default={}) or {}

    os.environ['OPENAI_API_KEY'] = api_key
    if organization:
        os.environ['OPENAI_ORG_ID'] = organization

    settings_dict = base_settings | (settings_dict or {})
    timeout = get_config("llm.timeout_seconds", configs, default=None)
    if timeout is not None and "timeout" not in settings_dict:
        settings_dict["timeout"] = float(timeout)

    model_settings = OpenAIResponsesModelSettings(**settings_dict) if settings_dict else None
    openai_model = OpenAIResponsesModel(model)

    agent_kwargs: Dict[str, Any] = {
        "model": openai_model,
        "model_settings": model_settings,
        "retries": 0,
    }
    if system_prompt:
        agent_kwargs["system_prompt"] = system_prompt
    return Agent(**agent_kwargs)
