"""Mitmproxy addon script for use with mitmdump -s flag.

This script is loaded by mitmdump and rewrites token values in every
request according to the discovered tokenrewrite.yaml.

Usage:
    TOKENREWRITE_CONFIG_DIR=~/.tokenrewrite mitmdump -s script.py
"""

from __future__ import annotations

import logging
from typing import Any

from mitmproxy import http

from tokenrewrite.config import get_config
from tokenrewrite.mitm.addon import TokenRewriteAddon
from tokenrewrite.modifier import TokenModifier

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class TokenRewriteScript:
    """Mitmproxy addon script that wraps TokenRewriteAddon."""

    def __init__(self) -> None:
        self.addon: TokenRewriteAddon | None = None

    def load(self, loader: Any) -> None:  # noqa: ANN401
        """Called when addon is loaded by mitmproxy."""
        logger.info("Loading tokenrewrite mitmproxy addon...")

        config = get_config()
        if config.debug:
            logging.getLogger("tokenrewrite").setLevel(logging.DEBUG)

        modifier = TokenModifier.from_config(config)
        self.addon = TokenRewriteAddon(modifier)
        logger.info(
            "tokenrewrite addon initialized (%s, %d rules)",
            "enabled" if modifier.is_enabled() else "disabled",
            len(modifier.list_rules()),
        )

    async def request(self, flow: http.HTTPFlow) -> None:
        """Handle HTTP request."""
        if self.addon:
            await self.addon.request(flow)


addons = [TokenRewriteScript()]
