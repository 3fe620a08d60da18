from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from jinja2 import Environment, FileSystemLoader, Template
from openai import OpenAI

logger = logging.getLogger(__name__)

_DOTENV_LOADED = False

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class AgentError(RuntimeError):
    """Raised when a collaborator call fails or returns something unusable."""


class ScriptParseError(AgentError):
    """Raised when the LLM response cannot be decoded as JSON.

    The undecodable payload is kept on ``raw`` for diagnosis.
    """

    def __init__(self, message: str, raw: str) -> None:
        super().__init__(message)
        self.raw = raw


def load_project_env() -> None:
    """Load the project-level .env once per process."""
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)
        logger.info("Loaded environment variables from %s", env_path)
    _DOTENV_LOADED = True


@dataclass
class LLMConfig:
    provider: str = "openrouter"
    model: str = field(default_factory=lambda: os.getenv("JOKE_MODEL", "anthropic/claude-haiku-4-5"))
    api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY"))
    base_url: Optional[str] = OPENROUTER_BASE_URL

    @classmethod
    def openai(cls, model: str) -> "LLMConfig":
        return cls(provider="openai", model=model, api_key=os.getenv("OPENAI_API_KEY"), base_url=None)


class BaseAgent(ABC):
    name: str = "base"

    def __init__(self, template_dir: Path | None = None, llm_config: LLMConfig | None = None) -> None:
        load_project_env()

        base_dir = template_dir or Path(__file__).resolve().parent / "templates"
        self._template_env = Environment(loader=FileSystemLoader(str(base_dir)))
        self.llm_config = llm_config or self.default_config()
        self._llm_client: Any | None = None

        if self.llm_config.provider not in {"openai", "openrouter"}:
            raise NotImplementedError(f"LLM provider '{self.llm_config.provider}' is not supported.")
        if self.llm_config.api_key:
            self._llm_client = OpenAI(api_key=self.llm_config.api_key, base_url=self.llm_config.base_url)

    def default_config(self) -> LLMConfig:
        return LLMConfig()

    @property
    def client(self) -> Any:
        if self._llm_client is None:
            raise AgentError(
                f"{self.name}: no API client configured. Set the API key for provider '{self.llm_config.provider}'."
            )
        return self._llm_client

    @abstractmethod
    def generate(self, input_json: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def call_llm(self, prompt: str, system: str | None = None, **kwargs: Any) -> Dict[str, Any] | str:
        logger.info("Calling LLM provider=%s model=%s", self.llm_config.provider, self.llm_config.model)

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            completion = self.client.chat.completions.create(
                model=self.llm_config.model,
                messages=messages,
                **kwargs,
            )
        except AgentError:
            raise
        except Exception as exc:
            raise AgentError(f"{self.llm_config.provider} error: {exc}") from exc
        return completion.choices[0].message.content or ""

    def load_template(self, name: str) -> Template:
        return self._template_env.get_template(name)

    def validate_json(self, json_data: str | Dict[str, Any]) -> Dict[str, Any]:
        if isinstance(json_data, dict):
            return json_data
        raw = json_data or ""
        text = raw.strip()
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # One recovery attempt: the outermost {...} span, which also drops markdown fences
            start = text.find("{")
            end = text.rfind("}")
            if start != -1 and end > start:
                try:
                    return json.loads(text[start : end + 1])
                except json.JSONDecodeError as exc:
                    logger.debug("Failed to decode extracted LLM JSON snippet: %s", exc)
            logger.debug("Failed to decode LLM JSON. Raw text: %s", text[:500])
            raise ScriptParseError("Failed to parse joke JSON", raw=raw) from None
