"""Runtime settings read from the environment and an optional .env file."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from rpg_narrator.errors import ConfigError
from rpg_narrator.gate import DEFAULT_MIN_LENGTH, DEFAULT_SEVERITY_THRESHOLD
from rpg_narrator.llm import HttpLLM

_TRUE = ("1", "true", "yes", "on")


class Settings(BaseModel):
    base_url: str = "http://localhost:11434"
    api_key: str = ""
    provider_format: Literal["ollama", "openai"] = "ollama"
    classifier_model: str = "llama3"
    narrator_model: str = "llama3"
    timeout: float = Field(default=120.0, gt=0)
    initial_scenario: str = "medieval_forest"
    severity_threshold: int = Field(default=DEFAULT_SEVERITY_THRESHOLD, ge=0, le=5)
    min_input_length: int = Field(default=DEFAULT_MIN_LENGTH, ge=0)
    violation_policy: Literal["narrate", "block"] = "narrate"
    stream: bool = True
    log_level: str = "WARNING"
    debug: bool = False
    llm_enabled: bool = True

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level.upper()

    def classifier_llm(self) -> HttpLLM | None:
        if not self.llm_enabled:
            return None
        return HttpLLM(
            self.base_url, self.classifier_model,
            api_key=self.api_key, provider_format=self.provider_format, timeout=self.timeout,
        )

    def narrator_llm(self) -> HttpLLM | None:
        if not self.llm_enabled:
            return None
        return HttpLLM(
            self.base_url, self.narrator_model,
            api_key=self.api_key, provider_format=self.provider_format, timeout=self.timeout,
        )


# env var → Settings field
_ENV_FIELDS = {
    "LLM_BASE_URL": "base_url",
    "LLM_API_KEY": "api_key",
    "LLM_PROVIDER_FORMAT": "provider_format",
    "CONSTRAINT_MODEL": "classifier_model",
    "NARRATION_MODEL": "narrator_model",
    "LLM_TIMEOUT": "timeout",
    "INITIAL_SCENARIO": "initial_scenario",
    "SEVERITY_THRESHOLD": "severity_threshold",
    "MIN_INPUT_LENGTH": "min_input_length",
    "VIOLATION_POLICY": "violation_policy",
    "LOG_LEVEL": "log_level",
}


def load_settings(env_file: Path | None = None, environ: dict[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    `env_file` is loaded first (existing variables win). Pass `environ` to
    read from a mapping instead of os.environ.
    """
    if environ is None:
        load_dotenv(env_file or Path.cwd() / ".env")
        environ = dict(os.environ)

    fields: dict[str, object] = {}
    for var, field in _ENV_FIELDS.items():
        value = environ.get(var)
        if value:
            fields[field] = value
    if "base_url" not in fields and environ.get("OLLAMA_BASE_URL"):
        fields["base_url"] = environ["OLLAMA_BASE_URL"]
    if environ.get("STREAM_NARRATION"):
        fields["stream"] = environ["STREAM_NARRATION"].strip().lower() in _TRUE
    if environ.get("DEBUG"):
        fields["debug"] = environ["DEBUG"].strip().lower() in _TRUE
    if environ.get("LLM_DISABLED"):
        fields["llm_enabled"] = environ["LLM_DISABLED"].strip().lower() not in _TRUE

    try:
        return Settings.model_validate(fields)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
