"""Mitmproxy integration for tokenrewrite."""

from tokenrewrite.mitm.addon import TokenRewriteAddon
from tokenrewrite.mitm.process import start_mitm

__all__ = ["TokenRewriteAddon", "start_mitm"]
