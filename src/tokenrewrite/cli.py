"""tokenrewrite CLI - Tyro implementation."""

import logging
import shutil
import sys
from pathlib import Path
from typing import Annotated

import attrs
import tyro
from mitmproxy import http
from rich import print
from rich.console import Console
from rich.table import Table

from tokenrewrite.config import CONFIG_FILE_NAME, TokenRewriteConfig
from tokenrewrite.modifier import TokenModifier
from tokenrewrite.request import MitmRequest
from tokenrewrite.rules import TokenRuleError


# Subcommand definitions using attrs
@attrs.define
class Install:
    """Install a tokenrewrite.yaml template."""

    force: bool = False
    """Overwrite existing configuration."""


@attrs.define
class Rules:
    """List configured rules, including the seeded defaults."""


@attrs.define
class Apply:
    """Run a request through the configured rules and show the result."""

    url: Annotated[str, tyro.conf.Positional]
    """Request URL, including any query string."""

    header: Annotated[list[str], tyro.conf.arg(aliases=["-H"])] = attrs.Factory(list)
    """Request header as 'Name: value' (repeatable)."""

    cookie: Annotated[list[str], tyro.conf.arg(aliases=["-b"])] = attrs.Factory(list)
    """Cookie as 'name=value' (repeatable)."""

    method: Annotated[str, tyro.conf.arg(aliases=["-X"])] = "GET"
    """HTTP method."""

    data: Annotated[str | None, tyro.conf.arg(aliases=["-d"])] = None
    """Request body."""


@attrs.define
class Start:
    """Start mitmproxy with the tokenrewrite addon."""


Command = (
    Annotated[Install, tyro.conf.subcommand(name="install")]
    | Annotated[Rules, tyro.conf.subcommand(name="rules")]
    | Annotated[Apply, tyro.conf.subcommand(name="apply")]
    | Annotated[Start, tyro.conf.subcommand(name="start")]
)


def setup_logging() -> None:
    """Configure logging with 100-character text width."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)-20s - %(levelname)-8s - %(message).100s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def get_templates_dir() -> Path:
    """Directory holding the bundled configuration template."""
    return Path(__file__).parent / "templates"


def load_config(config_dir: Path) -> TokenRewriteConfig:
    return TokenRewriteConfig.from_yaml(config_dir / CONFIG_FILE_NAME)


def build_modifier(config: TokenRewriteConfig) -> TokenModifier:
    """Build a modifier from config, exiting with an error on invalid rules."""
    try:
        return TokenModifier.from_config(config)
    except TokenRuleError as e:
        print(f"[red]Error:[/red] {e}", file=sys.stderr)
        sys.exit(1)


def install_config(config_dir: Path, force: bool = False) -> None:
    """Install the tokenrewrite.yaml template.

    Args:
        config_dir: Directory to install the configuration file to
        force: Whether to overwrite an existing configuration
    """
    dst = config_dir / CONFIG_FILE_NAME
    if dst.exists() and not force:
        print(f"Configuration {dst} already exists.")
        print("Use --force to overwrite existing configuration.")
        sys.exit(1)

    config_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(get_templates_dir() / CONFIG_FILE_NAME, dst)
    print(f"Installed {dst}")
    print("\nNext steps:")
    print(f"  1. Edit {dst} to configure token rules")
    print("  2. Start the proxy with: tokenrewrite start")


def show_rules(config_dir: Path) -> None:
    """Print every rule of the configured modifier as a table."""
    modifier = build_modifier(load_config(config_dir))

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", justify="right")
    table.add_column("Location", style="cyan")
    table.add_column("Target", style="cyan")
    table.add_column("Action", style="yellow")
    table.add_column("Enabled")
    table.add_column("Description")

    for rule in modifier.list_rules():
        table.add_row(
            str(rule.id),
            rule.location.value if rule.location else "global",
            rule.target or "-",
            rule.action.value,
            "[green]yes[/green]" if rule.enabled else "[dim]no[/dim]",
            rule.description,
        )

    console = Console()
    console.print(f"Token modifier: {'[green]enabled[/green]' if modifier.is_enabled() else '[red]disabled[/red]'}")
    console.print(table)


def parse_header(raw: str) -> tuple[str, str]:
    """Split a 'Name: value' header argument."""
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise ValueError(f"invalid header {raw!r}, expected 'Name: value'")
    return name.strip(), value.strip()


def build_request(cmd: Apply) -> http.Request:
    """Build a mitmproxy request from apply arguments."""
    headers = [parse_header(h) for h in cmd.header]
    if cmd.cookie:
        headers.append(("Cookie", "; ".join(cmd.cookie)))
    content = cmd.data.encode() if cmd.data is not None else b""
    return http.Request.make(
        cmd.method,
        cmd.url,
        content,
        http.Headers([(k.encode(), v.encode()) for k, v in headers]),
    )


def apply_request(config_dir: Path, cmd: Apply) -> http.Request:
    """Run a request through the configured modifier (gate forced on) and print it."""
    modifier = build_modifier(load_config(config_dir))
    modifier.enable()

    try:
        request = build_request(cmd)
    except ValueError as e:
        print(f"[red]Error:[/red] {e}", file=sys.stderr)
        sys.exit(1)

    modifier.modify_request(MitmRequest(request))

    console = Console()
    console.print(f"[bold]{request.method} {request.pretty_url}[/bold]")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Part", style="cyan")
    table.add_column("Name")
    table.add_column("Value", style="green")
    for name, value in request.headers.items(multi=True):
        table.add_row("header", name, value)
    for name, value in request.cookies.items(multi=True):
        table.add_row("cookie", name, value)
    for name, value in request.query.items(multi=True):
        table.add_row("query", name, value)
    console.print(table)

    if request.raw_content:
        console.print(request.get_text(strict=False))
    return request


def main(
    cmd: Annotated[Command, tyro.conf.arg(name="")],
    *,
    config_dir: Annotated[Path | None, tyro.conf.arg(help="Configuration directory")] = None,
) -> None:
    """tokenrewrite - rule-driven token rewriting proxy.

    Rewrites bearer tokens, JWTs, basic-auth credentials and session
    identifiers in outbound requests before they are forwarded.
    """
    if config_dir is None:
        config_dir = Path.home() / ".tokenrewrite"

    setup_logging()

    if isinstance(cmd, Install):
        install_config(config_dir, force=cmd.force)

    elif isinstance(cmd, Rules):
        show_rules(config_dir)

    elif isinstance(cmd, Apply):
        apply_request(config_dir, cmd)

    elif isinstance(cmd, Start):
        from tokenrewrite.mitm.process import start_mitm

        config = load_config(config_dir)
        # Validate rules before handing over to mitmdump
        build_modifier(config)
        start_mitm(config_dir, config.mitm)


def entry_point() -> None:
    """Entry point for the tokenrewrite command."""
    tyro.cli(main)


if __name__ == "__main__":
    entry_point()
