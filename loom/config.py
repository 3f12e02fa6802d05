"""Loom configuration."""

from pydantic import BaseModel
from typing import Optional
import os

TRUTHY_FLAG_VALUES = ("true", "1", "yes")


def parse_bool_flag(value: Optional[str]) -> bool:
    """Interpret an environment-style boolean flag.

    Only "true", "1" and "yes" (case-insensitive) enable the flag.
    Anything else, including an unset variable, disables it.
    """
    if value is None:
        return False
    return value.strip().lower() in TRUTHY_FLAG_VALUES


class LoomConfig(BaseModel):
    """Configuration for the loom runtime.

    All settings can be overridden via environment variables
    with the LOOM_ prefix.
    """

    # Checkpoints
    checkpoints_enabled: bool = False
    checkpoint_url: str = "http://localhost:3000/api/execution"
    checkpoint_timeout_seconds: float = 10.0

    # Context propagation ("contextvar" or "shared")
    context_storage: str = "contextvar"

    # Performance
    truncate_large_outputs: bool = True
    max_output_length: int = 50000  # Truncate recorded outputs longer than this

    @classmethod
    def from_env(cls) -> "LoomConfig":
        """Create config from environment variables."""
        return cls(
            checkpoints_enabled=parse_bool_flag(os.getenv("LOOM_CHECKPOINTS")),
            checkpoint_url=os.getenv(
                "LOOM_CHECKPOINT_URL", "http://localhost:3000/api/execution"
            ),
            checkpoint_timeout_seconds=float(
                os.getenv("LOOM_CHECKPOINT_TIMEOUT_SECONDS", "10.0")
            ),
            context_storage=os.getenv("LOOM_CONTEXT_STORAGE", "contextvar").lower(),
            truncate_large_outputs=parse_bool_flag(
                os.getenv("LOOM_TRUNCATE_LARGE_OUTPUTS", "true")
            ),
            max_output_length=int(os.getenv("LOOM_MAX_OUTPUT_LENGTH", "50000")),
        )


# Global config instance
_config: Optional[LoomConfig] = None


def get_config() -> LoomConfig:
    """Get the global loom config instance.

    The environment is read once, on first access.
    """
    global _config
    if _config is None:
        _config = LoomConfig.from_env()
    return _config


def set_config(config: Optional[LoomConfig]) -> None:
    """Set the global loom config instance (None re-reads the environment)."""
    global _config
    _config = config
