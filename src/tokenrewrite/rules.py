"""Token rule model and the sequential apply engine.

A rule is a compiled pattern plus an action. Rules are threaded in order:
rule N+1 sees the value produced by rule N, so a list of rules composes
rather than picking the first match.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

# $$, ${name}, $name (name = letters, digits, underscore)
_TEMPLATE_REF = re.compile(r"\$(?:(\$)|\{(\w+)\}|(\w+))")


class TokenRuleError(Exception):
    """Base error for rule registration failures."""


class InvalidPatternError(TokenRuleError, ValueError):
    """Raised when a rule pattern does not compile."""

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"invalid rule pattern {pattern!r}: {reason}")


class InvalidActionError(TokenRuleError, ValueError):
    """Raised when a rule action is not one of the known actions."""

    def __init__(self, action: str) -> None:
        self.action = action
        choices = ", ".join(a.value for a in RuleAction)
        super().__init__(f"unknown rule action {action!r} (expected one of: {choices})")


class RuleAction(str, Enum):
    """What a matching rule does to the value."""

    REPLACE = "replace"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    REMOVE = "remove"
    EXTRACT = "extract"

    @classmethod
    def parse(cls, action: str | RuleAction) -> RuleAction:
        if isinstance(action, RuleAction):
            return action
        try:
            return cls(str(action).lower())
        except ValueError:
            raise InvalidActionError(str(action)) from None


class TokenLocation(str, Enum):
    """Part of the request a rule collection is scoped to."""

    HEADER = "header"
    COOKIE = "cookie"
    QUERY = "query"
    BODY = "body"

    @classmethod
    def parse(cls, location: str | TokenLocation) -> TokenLocation:
        if isinstance(location, TokenLocation):
            return location
        try:
            return cls(str(location).lower())
        except ValueError:
            choices = ", ".join(loc.value for loc in cls)
            raise TokenRuleError(f"unknown rule location {location!r} (expected one of: {choices})") from None


@dataclass(frozen=True)
class TokenRule:
    """A single conditional string transformation.

    Attributes:
        id: Opaque identifier assigned by the rule store (0 for unregistered rules)
        pattern: Compiled pattern tested against the current value
        action: Transformation applied on match
        value: Payload for replace/prefix/suffix; replace expands $1-style references
        description: Free-text label, not guaranteed unique
        enabled: Disabled rules are skipped without testing the pattern
        location: Collection the rule was registered in (None for global rules)
        target: Header or query parameter name for name-keyed collections
    """

    id: int
    pattern: re.Pattern[str]
    action: RuleAction
    value: str
    description: str
    enabled: bool = True
    location: TokenLocation | None = None
    target: str = ""

    @property
    def location_label(self) -> str:
        """Human-readable location suffix used when listing rules."""
        if self.location is TokenLocation.HEADER:
            return f"(Header: {self.target})"
        if self.location is TokenLocation.COOKIE:
            return "(Cookie)"
        if self.location is TokenLocation.QUERY:
            return f"(Query: {self.target})"
        if self.location is TokenLocation.BODY:
            return "(Body)"
        return ""


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile rule pattern text.

    Raises:
        InvalidPatternError: If the pattern does not compile
    """
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidPatternError(pattern, str(e)) from e


def expand_template(match: re.Match[str], template: str) -> str:
    """Expand $-style group references in a replacement template.

    References to groups that do not exist or did not participate in the
    match expand to the empty string.
    """

    def _group(ref: re.Match[str]) -> str:
        if ref.group(1):
            return "$"
        name = ref.group(2) or ref.group(3)
        key: int | str = int(name) if name.isdigit() else name
        try:
            return match.group(key) or ""
        except IndexError:
            return ""

    return _TEMPLATE_REF.sub(_group, template)


def apply_rule(value: str, rule: TokenRule) -> str:
    """Apply one rule to a value; returns the value unchanged when it does not apply."""
    if not rule.enabled:
        return value

    match = rule.pattern.search(value)
    if match is None:
        return value

    if rule.action is RuleAction.REPLACE:
        value = expand_template(match, rule.value)
    elif rule.action is RuleAction.PREFIX:
        value = rule.value + value
    elif rule.action is RuleAction.SUFFIX:
        value = value + rule.value
    elif rule.action is RuleAction.REMOVE:
        value = ""
    elif rule.action is RuleAction.EXTRACT:
        if rule.pattern.groups < 1 or match.group(1) is None:
            return value
        value = match.group(1)

    logger.debug("Applied %s rule: %s", rule.action.value, rule.description)
    return value


def apply_rules(value: str, rules: Iterable[TokenRule]) -> str:
    """Thread a value through an ordered rule list.

    Every enabled rule is evaluated against the output of the previous one.
    No rule stops the chain, including one that empties the value.

    Args:
        value: Original value (header, cookie, query parameter or body text)
        rules: Rules in registration order

    Returns:
        The transformed value
    """
    result = value
    for rule in rules:
        result = apply_rule(result, rule)
    return result
