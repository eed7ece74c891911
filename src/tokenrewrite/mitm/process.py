"""Process management for the mitmproxy front end."""

import logging
import os
import subprocess
import sys
from pathlib import Path

from tokenrewrite.config import CONFIG_DIR_ENV, MitmConfig

logger = logging.getLogger(__name__)


def build_command(mitmdump_path: Path, config: MitmConfig) -> list[str]:
    """Build the mitmdump command line for ``config``.

    Args:
        mitmdump_path: Path to the mitmdump executable
        config: Mitmproxy configuration

    Returns:
        Command argument list
    """
    script_path = Path(__file__).parent / "script.py"
    cmd = [
        str(mitmdump_path),
        "--mode",
        config.mode,
        "--listen-port",
        str(config.port),
    ]
    if config.listen_host:
        cmd += ["--listen-host", config.listen_host]
    cmd += ["-s", str(script_path)]
    return cmd


def start_mitm(config_dir: Path, config: MitmConfig) -> None:
    """Run mitmproxy in the foreground with the tokenrewrite addon.

    Args:
        config_dir: Configuration directory passed to the addon script
        config: Mitmproxy configuration
    """
    # Get the bin directory from the current Python interpreter's location
    venv_bin = Path(sys.executable).parent
    mitmdump_path = venv_bin / "mitmdump"

    if not mitmdump_path.exists():
        logger.error(f"mitmdump not found at {mitmdump_path}")
        logger.error("Make sure mitmproxy is installed: pip install mitmproxy")
        sys.exit(1)

    cmd = build_command(mitmdump_path, config)

    env = os.environ.copy()
    env[CONFIG_DIR_ENV] = str(config_dir)

    logger.info(f"Starting mitmproxy ({config.mode}) on port {config.port}")

    try:
        # S603: Command construction is safe - we control the mitmdump path
        result = subprocess.run(cmd, env=env)  # noqa: S603
        sys.exit(result.returncode)
    except FileNotFoundError:
        logger.error("mitmdump command not found")
        logger.error("Please ensure mitmproxy is installed: pip install mitmproxy")
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
