"""Tests for the mitmproxy addon and addon script."""

import logging
from unittest.mock import MagicMock

import pytest
from mitmproxy import http

from tokenrewrite.config import RuleConfig, TokenRewriteConfig, clear_config_instance, set_config_instance
from tokenrewrite.mitm.addon import TokenRewriteAddon
from tokenrewrite.mitm.script import TokenRewriteScript
from tokenrewrite.modifier import TokenModifier


@pytest.fixture
def mock_flow() -> MagicMock:
    """Create a mock HTTP flow around a real request."""
    flow = MagicMock()
    flow.request = http.Request.make(
        "GET",
        "http://api.example.com/v1/items?token=abc",
        b"",
        {"Authorization": "Bearer abc123", "Cookie": "session=s1"},
    )
    return flow


@pytest.fixture(autouse=True)
def cleanup():
    yield
    clear_config_instance()


class TestTokenRewriteAddon:
    @pytest.mark.asyncio
    async def test_rewrites_request(self, mock_flow: MagicMock) -> None:
        modifier = TokenModifier()
        modifier.set_bearer_token_prefix("modified_")
        modifier.enable()
        addon = TokenRewriteAddon(modifier)

        await addon.request(mock_flow)

        assert mock_flow.request.headers["Authorization"] == "Bearer modified_abc123"

    @pytest.mark.asyncio
    async def test_disabled_modifier_skips(self, mock_flow: MagicMock) -> None:
        modifier = TokenModifier()
        modifier.set_bearer_token_prefix("modified_")
        addon = TokenRewriteAddon(modifier)

        await addon.request(mock_flow)

        assert mock_flow.request.headers["Authorization"] == "Bearer abc123"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged(self, mock_flow: MagicMock, caplog: pytest.LogCaptureFixture) -> None:
        modifier = MagicMock(spec=TokenModifier)
        modifier.is_enabled.return_value = True
        modifier.modify_request.side_effect = RuntimeError("boom")
        addon = TokenRewriteAddon(modifier)

        with caplog.at_level(logging.ERROR, logger="tokenrewrite.mitm.addon"):
            await addon.request(mock_flow)

        assert "Error rewriting request" in caplog.text
        assert "boom" in caplog.text


class TestTokenRewriteScript:
    @pytest.mark.asyncio
    async def test_load_builds_addon_from_config(self, mock_flow: MagicMock) -> None:
        set_config_instance(
            TokenRewriteConfig(
                enabled=True,
                rules=[RuleConfig(pattern="^(.+)$", action="prefix", value="modified_", location="cookie")],
            )
        )
        script = TokenRewriteScript()

        script.load(MagicMock())
        await script.request(mock_flow)

        assert script.addon is not None
        assert mock_flow.request.cookies["session"] == "modified_s1"

    @pytest.mark.asyncio
    async def test_request_before_load_is_noop(self, mock_flow: MagicMock) -> None:
        script = TokenRewriteScript()
        await script.request(mock_flow)
        assert mock_flow.request.headers["Authorization"] == "Bearer abc123"
