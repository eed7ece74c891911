"""Rule store owning the five rule collections.

The collections live in an immutable snapshot. Mutations serialise on a
lock, build a new snapshot and publish it with a single assignment, so a
request in flight keeps reading the snapshot it started with.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from tokenrewrite.rules import (
    RuleAction,
    TokenLocation,
    TokenRule,
    compile_pattern,
)

logger = logging.getLogger(__name__)

JWT_PATTERN = r"^ey[A-Za-z0-9_\-+/=]+\.[A-Za-z0-9_\-+/=]+\.[A-Za-z0-9_\-+/=]*$"
BEARER_PATTERN = r"^Bearer\s+(.+)$"
BASIC_PATTERN = r"^Basic\s+(.+)$"

# (pattern, action, value, description); seeded disabled
DEFAULT_RULES: tuple[tuple[str, RuleAction, str, str], ...] = (
    (JWT_PATTERN, RuleAction.PREFIX, "modified_", "Add prefix to JWT tokens"),
    (BEARER_PATTERN, RuleAction.REPLACE, "Bearer modified_token", "Replace Bearer tokens"),
    (BASIC_PATTERN, RuleAction.PREFIX, "Basic modified_", "Modify Basic Auth tokens"),
)

_EMPTY: Mapping[str, tuple[TokenRule, ...]] = MappingProxyType({})


@dataclass(frozen=True)
class RuleSet:
    """Immutable view of every rule collection at one point in time."""

    global_rules: tuple[TokenRule, ...] = ()
    header_rules: Mapping[str, tuple[TokenRule, ...]] = field(default_factory=lambda: _EMPTY)
    cookie_rules: tuple[TokenRule, ...] = ()
    query_rules: Mapping[str, tuple[TokenRule, ...]] = field(default_factory=lambda: _EMPTY)
    body_rules: tuple[TokenRule, ...] = ()

    def __iter__(self) -> Iterator[TokenRule]:
        """Iterate all rules: global, header, cookie, query, body."""
        yield from self.global_rules
        for rules in self.header_rules.values():
            yield from rules
        yield from self.cookie_rules
        for rules in self.query_rules.values():
            yield from rules
        yield from self.body_rules

    def with_rule(self, rule: TokenRule) -> RuleSet:
        """Return a new snapshot with ``rule`` appended to its collection."""
        if rule.location is TokenLocation.HEADER:
            return replace(self, header_rules=_append_keyed(self.header_rules, rule))
        if rule.location is TokenLocation.COOKIE:
            return replace(self, cookie_rules=(*self.cookie_rules, rule))
        if rule.location is TokenLocation.QUERY:
            return replace(self, query_rules=_append_keyed(self.query_rules, rule))
        if rule.location is TokenLocation.BODY:
            return replace(self, body_rules=(*self.body_rules, rule))
        return replace(self, global_rules=(*self.global_rules, rule))

    def with_replaced(self, old: TokenRule, new: TokenRule) -> RuleSet:
        """Return a new snapshot where ``old`` (matched by id) is swapped for ``new``."""

        def swap(rules: tuple[TokenRule, ...]) -> tuple[TokenRule, ...]:
            return tuple(new if r.id == old.id else r for r in rules)

        if old.location in (TokenLocation.HEADER, TokenLocation.QUERY):
            keyed = self.header_rules if old.location is TokenLocation.HEADER else self.query_rules
            updated = dict(keyed)
            updated[old.target] = swap(keyed[old.target])
            if old.location is TokenLocation.HEADER:
                return replace(self, header_rules=MappingProxyType(updated))
            return replace(self, query_rules=MappingProxyType(updated))
        if old.location is TokenLocation.COOKIE:
            return replace(self, cookie_rules=swap(self.cookie_rules))
        if old.location is TokenLocation.BODY:
            return replace(self, body_rules=swap(self.body_rules))
        return replace(self, global_rules=swap(self.global_rules))


def _append_keyed(
    keyed: Mapping[str, tuple[TokenRule, ...]], rule: TokenRule
) -> Mapping[str, tuple[TokenRule, ...]]:
    updated = dict(keyed)
    updated[rule.target] = (*updated.get(rule.target, ()), rule)
    return MappingProxyType(updated)


class RuleStore:
    """Registry of token rules, seeded with three disabled defaults.

    Rules are only ever appended; order within a collection is registration
    order. Header and query collections are keyed by name and iterate in the
    order each name first received a rule.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._snapshot = self._seeded()

    @property
    def snapshot(self) -> RuleSet:
        """Current rule collections. Safe to read without locking."""
        return self._snapshot

    def _seeded(self) -> RuleSet:
        rules = tuple(
            TokenRule(
                id=next(self._ids),
                pattern=compile_pattern(pattern),
                action=action,
                value=value,
                description=description,
                enabled=False,
            )
            for pattern, action, value, description in DEFAULT_RULES
        )
        return RuleSet(global_rules=rules)

    def add(
        self,
        pattern: str,
        action: str | RuleAction,
        value: str,
        description: str,
        location: str | TokenLocation,
        target: str = "",
    ) -> TokenRule:
        """Compile and register an enabled rule.

        Args:
            pattern: Regular expression text
            action: One of replace, prefix, suffix, remove, extract
            value: Action payload
            description: Free-text label
            location: header, cookie, query or body
            target: Header or query parameter name (ignored for cookie and body)

        Returns:
            The stored rule, carrying its assigned id

        Raises:
            InvalidPatternError: If the pattern does not compile
            InvalidActionError: If the action is unknown
            TokenRuleError: If the location is unknown
        """
        compiled = compile_pattern(pattern)
        parsed_action = RuleAction.parse(action)
        parsed_location = TokenLocation.parse(location)
        if parsed_location in (TokenLocation.COOKIE, TokenLocation.BODY):
            target = ""

        with self._lock:
            rule = TokenRule(
                id=next(self._ids),
                pattern=compiled,
                action=parsed_action,
                value=value,
                description=description,
                enabled=True,
                location=parsed_location,
                target=target,
            )
            self._snapshot = self._snapshot.with_rule(rule)

        if parsed_location is TokenLocation.HEADER:
            logger.info("Added header rule for '%s': %s", target, description)
        elif parsed_location is TokenLocation.QUERY:
            logger.info("Added query param rule for '%s': %s", target, description)
        else:
            logger.info("Added %s rule: %s", parsed_location.value, description)
        return rule

    def _set_enabled(self, rule: TokenRule | None, enabled: bool) -> bool:
        # Caller holds the lock
        if rule is None:
            return False
        if rule.enabled != enabled:
            self._snapshot = self._snapshot.with_replaced(rule, replace(rule, enabled=enabled))
        return True

    def find(self, description: str) -> TokenRule | None:
        """First rule with this exact description, in list_rules() order."""
        return next((r for r in self._snapshot if r.description == description), None)

    def get(self, rule_id: int) -> TokenRule | None:
        """Rule with this id, if registered."""
        return next((r for r in self._snapshot if r.id == rule_id), None)

    def enable(self, description: str) -> bool:
        """Enable the first rule with this description. Returns False if none matched."""
        return self._toggle_by_description(description, True)

    def disable(self, description: str) -> bool:
        """Disable the first rule with this description. Returns False if none matched."""
        return self._toggle_by_description(description, False)

    def _toggle_by_description(self, description: str, enabled: bool) -> bool:
        with self._lock:
            found = self._set_enabled(self.find(description), enabled)
        if not found:
            logger.warning("Rule not found: %s", description)
            return False
        logger.info("%s rule: %s", "Enabled" if enabled else "Disabled", description)
        return True

    def enable_by_id(self, rule_id: int) -> bool:
        """Enable a rule by id. Returns False if the id is unknown."""
        return self._toggle_by_id(rule_id, True)

    def disable_by_id(self, rule_id: int) -> bool:
        """Disable a rule by id. Returns False if the id is unknown."""
        return self._toggle_by_id(rule_id, False)

    def _toggle_by_id(self, rule_id: int, enabled: bool) -> bool:
        with self._lock:
            rule = self.get(rule_id)
            found = self._set_enabled(rule, enabled)
        if not found or rule is None:
            logger.warning("Rule not found: #%d", rule_id)
            return False
        logger.info("%s rule #%d: %s", "Enabled" if enabled else "Disabled", rule_id, rule.description)
        return True

    def list_rules(self) -> list[TokenRule]:
        """All rules with their location appended to the description.

        The returned rules are copies; stored rules keep their plain descriptions.
        """
        listed = []
        for rule in self._snapshot:
            label = rule.location_label
            if label:
                rule = replace(rule, description=f"{rule.description} {label}")
            listed.append(rule)
        return listed

    def clear(self) -> None:
        """Drop every rule and re-seed the disabled defaults."""
        with self._lock:
            self._snapshot = self._seeded()
        logger.info("All token modification rules cleared")
