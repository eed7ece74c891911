"""Configuration management for tokenrewrite.

Configuration Discovery Precedence (Highest to Lowest Priority):
===============================================================

1. **TOKENREWRITE_CONFIG_DIR Environment Variable** (Highest Priority)
   - Set by CLI or manually: `export TOKENREWRITE_CONFIG_DIR=/path/to/config`
   - Looks for: `${TOKENREWRITE_CONFIG_DIR}/tokenrewrite.yaml`

2. **~/.tokenrewrite Directory** (Fallback)
   - Looks for: `~/.tokenrewrite/tokenrewrite.yaml`

If no `tokenrewrite.yaml` is found, default configuration is applied
(modifier disabled, only the seeded default rules).

Example tokenrewrite.yaml:
-------------------------
tokenrewrite:
  enabled: true
  enable_defaults:
    - "Replace Bearer tokens"
  bearer_prefix: "tampered_"
  rules:
    - pattern: '^(.+)$'
      action: prefix
      value: "modified_"
      description: "Prefix session cookies"
      location: cookie
  mitm:
    port: 8080
    mode: "reverse:http://localhost:3000"
"""

import logging
import os
import threading
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "tokenrewrite.yaml"
CONFIG_DIR_ENV = "TOKENREWRITE_CONFIG_DIR"


class RuleConfig(BaseModel):
    """A rule registered at startup."""

    pattern: str
    """Regular expression tested against the current value"""

    action: str = "replace"
    """replace, prefix, suffix, remove or extract"""

    value: str = ""
    """Action payload; replace values may reference groups as $1 or ${name}"""

    description: str = ""
    """Free-text label used by enable/disable"""

    location: str = "header"
    """header, cookie, query or body"""

    target: str = ""
    """Header or query parameter name (unused for cookie and body)"""

    enabled: bool = True
    """Register the rule disabled when False"""


class MitmConfig(BaseModel):
    """Configuration for the mitmproxy front end."""

    port: int = 8080
    """Port for mitmproxy to listen on"""

    listen_host: str = ""
    """Interface to bind (empty = all interfaces)"""

    mode: str = "regular"
    """mitmproxy mode, e.g. 'regular' or 'reverse:http://localhost:3000'"""


class TokenRewriteConfig(BaseSettings):
    """Main configuration for tokenrewrite that reads from tokenrewrite.yaml."""

    model_config = SettingsConfigDict(
        env_prefix="TOKENREWRITE_",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = False

    # Global gate state at startup
    enabled: bool = False

    # Apply body rules to the decoded request body
    rewrite_body: bool = False

    # Descriptions of seeded default rules to switch on
    enable_defaults: list[str] = Field(default_factory=list)

    # Shortcuts for the Authorization header convenience rules
    bearer_prefix: str | None = None
    jwt_prefix: str | None = None

    rules: list[RuleConfig] = Field(default_factory=list)

    mitm: MitmConfig = Field(default_factory=MitmConfig)

    config_path: Path | None = None

    @classmethod
    def from_yaml(cls, yaml_path: Path, **kwargs: Any) -> "TokenRewriteConfig":
        """Load configuration from a tokenrewrite.yaml file.

        Args:
            yaml_path: Path to the tokenrewrite.yaml file
            **kwargs: Overrides applied on top of the file contents

        Returns:
            TokenRewriteConfig instance (defaults if the file does not exist)
        """
        data: dict[str, Any] = {}
        if yaml_path.exists():
            with yaml_path.open() as f:
                raw = yaml.safe_load(f) or {}
            section = raw.get("tokenrewrite", {})
            if isinstance(section, dict):
                data = section
            else:
                logger.warning(f"Invalid tokenrewrite section in {yaml_path}: {type(section)}")

        return cls(**{**data, **kwargs, "config_path": yaml_path})


def find_config_dir() -> Path:
    """Resolve the configuration directory (env var, then ~/.tokenrewrite)."""
    env_config_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_config_dir:
        return Path(env_config_dir)
    return Path.home() / ".tokenrewrite"


# Global configuration instance
_config_instance: TokenRewriteConfig | None = None
_config_lock = threading.Lock()


def get_config() -> TokenRewriteConfig:
    """Get the configuration instance."""
    global _config_instance

    if _config_instance is None:
        with _config_lock:
            # Double-check locking pattern
            if _config_instance is None:
                config_dir = find_config_dir()
                config_path = config_dir / CONFIG_FILE_NAME
                if config_path.exists():
                    logger.info(f"Loading tokenrewrite config from: {config_path}")
                else:
                    logger.info(f"{CONFIG_FILE_NAME} not found at {config_path}, using default config")
                _config_instance = TokenRewriteConfig.from_yaml(config_path)

    return _config_instance


def set_config_instance(config: TokenRewriteConfig) -> None:
    """Set the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = config


def clear_config_instance() -> None:
    """Clear the global configuration instance (for testing)."""
    global _config_instance
    _config_instance = None
