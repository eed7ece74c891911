"""tokenrewrite - rule-driven token rewriting for outbound HTTP requests."""

from tokenrewrite.modifier import TokenModifier
from tokenrewrite.request import MitmRequest, MutableRequest
from tokenrewrite.rules import (
    InvalidActionError,
    InvalidPatternError,
    RuleAction,
    TokenLocation,
    TokenRule,
    TokenRuleError,
    apply_rules,
)
from tokenrewrite.store import RuleStore

__all__ = [
    "TokenModifier",
    "RuleStore",
    "TokenRule",
    "RuleAction",
    "TokenLocation",
    "TokenRuleError",
    "InvalidPatternError",
    "InvalidActionError",
    "MutableRequest",
    "MitmRequest",
    "apply_rules",
]
