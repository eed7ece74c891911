"""Mitmproxy addon that rewrites token values in outbound requests."""

from __future__ import annotations

import logging

from mitmproxy import http

from tokenrewrite.modifier import TokenModifier
from tokenrewrite.request import MitmRequest

logger = logging.getLogger(__name__)


class TokenRewriteAddon:
    """Mitmproxy addon running every request through a TokenModifier."""

    def __init__(self, modifier: TokenModifier) -> None:
        """Initialize the addon.

        Args:
            modifier: Configured token modifier (its gate decides whether anything happens)
        """
        self.modifier = modifier

    async def request(self, flow: http.HTTPFlow) -> None:
        """Rewrite tokens in the request before it is forwarded.

        Args:
            flow: HTTP flow object
        """
        if not self.modifier.is_enabled():
            return

        try:
            self.modifier.modify_request(MitmRequest(flow.request))
        except Exception as e:
            logger.error("Error rewriting request %s: %s", flow.request.pretty_url, e, exc_info=True)
