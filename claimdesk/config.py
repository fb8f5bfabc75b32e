"""Service configuration loaded from the environment."""

import os
from dataclasses import dataclass, field

from claimdesk.clients.anthropic import AnthropicConfig

DEFAULT_MAX_TOOL_ROUNDS = 5


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class Settings:
    """Top-level service settings."""

    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS
    claims_path: str | None = None
    tool_state_path: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from CLAIMDESK_* environment variables."""
        defaults = AnthropicConfig()
        anthropic_config = AnthropicConfig(
            model=os.getenv("CLAIMDESK_MODEL", defaults.model),
            max_tokens=_env_int("CLAIMDESK_MAX_TOKENS", defaults.max_tokens),
            temperature=_env_float("CLAIMDESK_TEMPERATURE", defaults.temperature),
            max_retries=_env_int("CLAIMDESK_MAX_RETRIES", defaults.max_retries),
            requests_per_minute=_env_int("CLAIMDESK_REQUESTS_PER_MINUTE", defaults.requests_per_minute),
            tokens_per_minute=_env_int("CLAIMDESK_TOKENS_PER_MINUTE", defaults.tokens_per_minute),
        )

        max_tool_rounds = _env_int("CLAIMDESK_MAX_TOOL_ROUNDS", DEFAULT_MAX_TOOL_ROUNDS)
        if max_tool_rounds < 1:
            raise ValueError("CLAIMDESK_MAX_TOOL_ROUNDS must be at least 1")

        return cls(
            anthropic=anthropic_config,
            max_tool_rounds=max_tool_rounds,
            claims_path=os.getenv("CLAIMDESK_CLAIMS_PATH") or None,
            tool_state_path=os.getenv("CLAIMDESK_TOOL_STATE_PATH") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
