"""
iwmenu command-line entry point.
"""

import argparse
import asyncio
import sys

from .app import EXIT_FAILURE, EXIT_INTERRUPTED, EXIT_USAGE, run_app
from .chooser import ChooserKind
from .config import load_config, merge_cli_overrides
from .errors import IwmenuError
from .i18n import load_language
from .icons import IconMode
from .logging import configure_logging, get_logger

VERSION = "0.3.0"

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="iwmenu",
        description="Manage iwd Wi-Fi through a dmenu-style chooser.",
    )
    parser.add_argument(
        "-m", "--menu",
        choices=[kind.value for kind in ChooserKind],
        help="Chooser program to drive",
    )
    parser.add_argument(
        "--menu-command",
        help="Command template for --menu custom, e.g. "
             "\"wofi -d -p '{prompt}' {password_flag:--password}\"",
    )
    parser.add_argument(
        "-i", "--icon",
        choices=[mode.value for mode in IconMode],
        help="Icon style (default: glyph)",
    )
    parser.add_argument(
        "-s", "--spaces",
        type=int,
        help="Spaces between glyph and label (default: 1)",
    )
    parser.add_argument("-c", "--config", help="YAML configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (default: WARNING)",
    )
    parser.add_argument("--log-file", help="Also log to this file")
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {VERSION}")
    return parser


def resolve_options(args: argparse.Namespace, parser: argparse.ArgumentParser) -> dict:
    """Merge the configuration file with command-line flags; usage errors exit 2."""
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        parser.error(f"invalid configuration: {e}")

    config = merge_cli_overrides(config, {
        "menu": args.menu,
        "menu_command": args.menu_command,
        "icon": args.icon,
        "spaces": args.spaces,
        "log_level": args.log_level,
        "log_file": args.log_file,
    })

    if not config.get("menu"):
        parser.error("--menu is required")
    if config["menu"] not in [kind.value for kind in ChooserKind]:
        parser.error(f"unknown menu: {config['menu']}")
    if config["menu"] == ChooserKind.CUSTOM.value and not config.get("menu_command"):
        parser.error("--menu-command is required with --menu custom")
    if config.get("icon") not in [mode.value for mode in IconMode]:
        parser.error(f"unknown icon style: {config.get('icon')}")
    if int(config.get("spaces") or 0) < 0:
        parser.error("--spaces must not be negative")
    return config


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = resolve_options(args, parser)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else EXIT_USAGE

    configure_logging(log_level=config["log_level"], log_file=config.get("log_file"))
    load_language()
    logger.info(f"iwmenu {VERSION} starting with {config['menu']}")

    try:
        return asyncio.run(run_app(config))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return EXIT_INTERRUPTED
    except IwmenuError as e:
        logger.error(f"{e}")
        print(f"iwmenu: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
