"""Command-line entry for lumen_calendar.

Subcommands:
  serve   run the HTTP API (default when no subcommand is given)
  render  print the rendered view of a seed file as JSON
"""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for lumen_calendar CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="lumen_calendar",
        description="Lumen calendar - scheduling and layout engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m lumen_calendar serve --port 3000
  python -m lumen_calendar render --date 2024-05-06 --view week --events seed.yaml
        """,
    )
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or LUMEN_SERVER_PORT)",
    )
    serve.add_argument("--config", metavar="PATH", help="YAML/JSON config file")

    render = subparsers.add_parser("render", help="Render a view and print it as JSON")
    render.add_argument("--date", required=True, metavar="YYYY-MM-DD", help="Selected date")
    render.add_argument("--view", choices=["day", "week", "month"], default="month")
    render.add_argument("--events", metavar="PATH", help="YAML/JSON file with events")
    render.add_argument("--search", default="", metavar="TERM", help="Free-text filter")
    render.add_argument("--config", metavar="PATH", help="YAML/JSON config file")

    return parser


def render_command(args: argparse.Namespace) -> int:
    """Render a view from a seed file and print it.

    Returns:
        Process exit code
    """
    from lumen_calendar.calendar.datetime_utils import parse_local_datetime
    from lumen_calendar.calendar.models import FilterState
    from lumen_calendar.calendar.normalize import load_seed_events
    from lumen_calendar.config_loader import load_config
    from lumen_calendar.core.exceptions import LumenCalendarError
    from lumen_calendar.domain.pipeline import render_view

    selected = parse_local_datetime(args.date)
    if selected is None:
        print(f"Invalid --date: {args.date}", file=sys.stderr)
        return 2

    try:
        config = load_config(args.config)
        events = load_seed_events(args.events) if args.events else []
    except (OSError, LumenCalendarError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    view = render_view(events, selected.date(), args.view, FilterState(term=args.search), config)
    print(view.model_dump_json(indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the lumen_calendar CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.command == "render":
        sys.exit(render_command(args))

    run_server(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
