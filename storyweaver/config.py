"""Runtime configuration read from the environment.

A `.env` file at the repository root is loaded first; real environment
variables win over it.

    LLM_PROVIDER_URL         base URL of the backend (https://api.openai.com)
    LLM_PROVIDER_FORMAT      openai | koboldcpp
    LLM_MODEL                model name (gpt-4o)
    LLM_API_KEY              bearer token; falls back to OPENAI_API_KEY
    LLM_TIMEOUT              HTTP timeout per call, seconds (120)
    FOUNDATION_TEMPERATURE   (0.8)     FOUNDATION_MAX_TOKENS   (1000)
    TREE_TEMPERATURE         (0.7)     TREE_MAX_TOKENS         (4000)
    GENERATION_TIMEOUT       per-phase bound in the builder, seconds (unset)
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from storyweaver.llm import HttpLLM, ProviderFormat

ROOT = Path(__file__).parent.parent


class PhaseSettings(BaseModel):
    """Sampling parameters for one generation phase."""

    temperature: float
    max_tokens: int


class Settings(BaseModel):
    provider_url: str = "https://api.openai.com"
    provider_format: ProviderFormat = "openai"
    model: str = "gpt-4o"
    api_key: str = ""
    llm_timeout: float = 120.0
    foundation: PhaseSettings = PhaseSettings(temperature=0.8, max_tokens=1000)
    # The tree reply carries all seven segments, hence the larger bound.
    tree: PhaseSettings = PhaseSettings(temperature=0.7, max_tokens=4000)
    generation_timeout: float | None = None

    def create_llm(self) -> HttpLLM:
        return HttpLLM(
            provider_url=self.provider_url,
            api_key=self.api_key,
            provider_format=self.provider_format,
            model=self.model,
            timeout=self.llm_timeout,
        )


def _env_number(name: str, default: float | None, cast=float):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from the environment (and `.env`, if present)."""
    load_dotenv(env_file or ROOT / ".env")
    defaults = Settings()

    provider_format = os.getenv("LLM_PROVIDER_FORMAT", defaults.provider_format).lower()
    if provider_format not in ("openai", "koboldcpp"):
        raise ValueError("LLM_PROVIDER_FORMAT must be one of: openai, koboldcpp")

    return Settings(
        provider_url=os.getenv("LLM_PROVIDER_URL", defaults.provider_url),
        provider_format=provider_format,
        model=os.getenv("LLM_MODEL", defaults.model),
        api_key=os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY", ""),
        llm_timeout=_env_number("LLM_TIMEOUT", defaults.llm_timeout),
        foundation=PhaseSettings(
            temperature=_env_number("FOUNDATION_TEMPERATURE", defaults.foundation.temperature),
            max_tokens=_env_number("FOUNDATION_MAX_TOKENS", defaults.foundation.max_tokens, int),
        ),
        tree=PhaseSettings(
            temperature=_env_number("TREE_TEMPERATURE", defaults.tree.temperature),
            max_tokens=_env_number("TREE_MAX_TOKENS", defaults.tree.max_tokens, int),
        ),
        generation_timeout=_env_number("GENERATION_TIMEOUT", None),
    )
