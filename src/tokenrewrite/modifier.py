"""Token modifier: global gate, convenience rules and request dispatch.

``modify_request`` routes values from the request to the rule lists that
apply to them and writes back only what changed:

- ``Authorization``: header-specific rules, then the global rules
- other headers with registered rules: their header-specific rules
- every cookie: the cookie rules
- query parameters with registered rules: their rules, per occurrence
- body (opt-in): the body rules over the whole decoded text
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tokenrewrite.rules import RuleAction, TokenLocation, TokenRule, apply_rules
from tokenrewrite.store import RuleSet, RuleStore

if TYPE_CHECKING:
    from tokenrewrite.config import TokenRewriteConfig
    from tokenrewrite.request import MutableRequest

logger = logging.getLogger(__name__)

AUTHORIZATION = "Authorization"

BEARER_PREFIX_PATTERN = r"^Bearer\s+(.+)$"
JWT_PREFIX_PATTERN = r"^(ey[A-Za-z0-9_\-+/=]+\.[A-Za-z0-9_\-+/=]+\.[A-Za-z0-9_\-+/=]*)$"


class TokenModifier:
    """Rule-driven rewriting of credential values in outbound requests.

    A new modifier is disabled and holds the three disabled default rules.
    Nothing is rewritten until ``enable()`` is called.
    """

    def __init__(self, store: RuleStore | None = None, rewrite_body: bool = False) -> None:
        """Initialize the modifier.

        Args:
            store: Rule store to use (a fresh seeded store if None)
            rewrite_body: Also apply body rules to the decoded request body
        """
        self.store = store or RuleStore()
        self.rewrite_body = rewrite_body
        self._enabled = False

    @classmethod
    def from_config(cls, config: TokenRewriteConfig) -> TokenModifier:
        """Build a modifier from configuration.

        Raises:
            TokenRuleError: If a configured rule has an invalid pattern, action or location
        """
        modifier = cls(rewrite_body=config.rewrite_body)

        for description in config.enable_defaults:
            modifier.enable_rule(description)
        if config.bearer_prefix:
            modifier.set_bearer_token_prefix(config.bearer_prefix)
        if config.jwt_prefix:
            modifier.set_jwt_prefix(config.jwt_prefix)

        for rule_config in config.rules:
            rule = modifier.add_rule(
                rule_config.pattern,
                rule_config.action,
                rule_config.value,
                rule_config.description,
                rule_config.location,
                rule_config.target,
            )
            if not rule_config.enabled:
                modifier.disable_rule_id(rule.id)

        if config.enabled:
            modifier.enable()
        return modifier

    # Global gate

    def enable(self) -> None:
        self._enabled = True
        logger.info("Token modifier enabled")

    def disable(self) -> None:
        self._enabled = False
        logger.info("Token modifier disabled")

    def is_enabled(self) -> bool:
        return self._enabled

    # Rule management

    def add_rule(
        self,
        pattern: str,
        action: str | RuleAction,
        value: str,
        description: str,
        location: str | TokenLocation,
        target: str = "",
    ) -> TokenRule:
        """Register an enabled rule. See ``RuleStore.add``."""
        return self.store.add(pattern, action, value, description, location, target)

    def enable_rule(self, description: str) -> bool:
        return self.store.enable(description)

    def disable_rule(self, description: str) -> bool:
        return self.store.disable(description)

    def enable_rule_id(self, rule_id: int) -> bool:
        return self.store.enable_by_id(rule_id)

    def disable_rule_id(self, rule_id: int) -> bool:
        return self.store.disable_by_id(rule_id)

    def list_rules(self) -> list[TokenRule]:
        return self.store.list_rules()

    def clear_rules(self) -> None:
        self.store.clear()

    # Convenience rules on the Authorization header

    def set_bearer_token_prefix(self, prefix: str) -> TokenRule:
        """Prefix the token part of ``Bearer <token>`` values."""
        return self.add_rule(
            BEARER_PREFIX_PATTERN,
            RuleAction.REPLACE,
            f"Bearer {prefix}$1",
            "Add prefix to Bearer tokens",
            TokenLocation.HEADER,
            AUTHORIZATION,
        )

    def set_jwt_prefix(self, prefix: str) -> TokenRule:
        """Prefix bare JWT values."""
        return self.add_rule(
            JWT_PREFIX_PATTERN,
            RuleAction.REPLACE,
            f"{prefix}$1",
            "Add prefix to JWT tokens",
            TokenLocation.HEADER,
            AUTHORIZATION,
        )

    def replace_token_value(self, pattern: str, new_value: str, description: str) -> TokenRule:
        """Replace Authorization values matching ``pattern`` with ``new_value``."""
        return self.add_rule(pattern, RuleAction.REPLACE, new_value, description, TokenLocation.HEADER, AUTHORIZATION)

    # Request rewriting

    def modify_request(self, request: MutableRequest) -> None:
        """Rewrite token values in ``request`` in place.

        Does nothing while the modifier is disabled. Missing headers, cookies,
        query string or body are simply skipped.
        """
        if not self._enabled:
            return

        rules = self.store.snapshot
        self._modify_headers(request, rules)
        self._modify_cookies(request, rules)
        self._modify_query_params(request, rules)
        if self.rewrite_body:
            self._modify_body(request, rules)

    def _modify_headers(self, request: MutableRequest, rules: RuleSet) -> None:
        auth_header = request.get_header(AUTHORIZATION)
        if auth_header:
            header_rules = rules.header_rules.get(AUTHORIZATION)
            if header_rules:
                new_value = apply_rules(auth_header, header_rules)
                if new_value != auth_header:
                    request.set_header(AUTHORIZATION, new_value)
                    logger.debug("Modified Authorization header")
                    auth_header = new_value

            new_value = apply_rules(auth_header, rules.global_rules)
            if new_value != auth_header:
                request.set_header(AUTHORIZATION, new_value)
                logger.debug("Modified Authorization header with global rule")

        for header_name, header_rules in rules.header_rules.items():
            if header_name == AUTHORIZATION:
                continue
            value = request.get_header(header_name)
            if not value:
                continue
            new_value = apply_rules(value, header_rules)
            if new_value != value:
                request.set_header(header_name, new_value)
                logger.debug("Modified header '%s'", header_name)

    def _modify_cookies(self, request: MutableRequest, rules: RuleSet) -> None:
        if not rules.cookie_rules:
            return

        cookies = request.get_cookies()
        modified = False
        updated = []
        for name, value in cookies:
            new_value = apply_rules(value, rules.cookie_rules)
            if new_value != value:
                modified = True
                logger.debug("Modified cookie '%s'", name)
            updated.append((name, new_value))

        if modified:
            request.set_cookies(updated)

    def _modify_query_params(self, request: MutableRequest, rules: RuleSet) -> None:
        if not rules.query_rules:
            return

        params = request.get_query()
        modified = False
        updated = []
        for name, value in params:
            param_rules = rules.query_rules.get(name)
            if param_rules:
                new_value = apply_rules(value, param_rules)
                if new_value != value:
                    modified = True
                    logger.debug("Modified query param '%s'", name)
                    value = new_value
            updated.append((name, value))

        if modified:
            request.set_query(updated)

    def _modify_body(self, request: MutableRequest, rules: RuleSet) -> None:
        if not rules.body_rules:
            return

        body = request.get_body()
        if body is None:
            return
        new_body = apply_rules(body, rules.body_rules)
        if new_body != body:
            request.set_body(new_body)
            logger.debug("Modified request body")
