"""Command-line front end for viewing and editing stored settings.

Usage:
    settings-surface --schema schema.yaml show
    settings-surface --schema schema.yaml set enabled=true name=abc
    settings-surface --schema schema.yaml toggle advanced
    settings-surface --schema schema.yaml reset
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import build_adapter, load_config
from .display import describe_session
from .errors import SchemaError
from .logging_config import configure_from_settings
from .schema import load_schema
from .session import SettingsSession

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_INVALID = 2
EXIT_CONFIG_ERROR = 3


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="settings-surface",
        description="View and edit settings described by a declarative schema.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Engine config YAML")
    parser.add_argument("--env-file", type=Path, default=None, help=".env file to load")
    parser.add_argument("--schema", type=Path, default=None, help="Schema file (YAML/JSON)")
    parser.add_argument("--namespace", default=None, help="Storage namespace override")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("show", help="Print current values")

    set_parser = sub.add_parser("set", help="Set values and save them if all are valid")
    set_parser.add_argument("assignments", nargs="+", metavar="ID=VALUE")

    toggle_parser = sub.add_parser("toggle", help="Expand or collapse a group")
    toggle_parser.add_argument("group_id")

    sub.add_parser("reset", help="Reset everything to defaults and save")
    return parser


def _parse_assignments(assignments: List[str]) -> List[tuple]:
    pairs = []
    for item in assignments:
        field_id, sep, value = item.partition("=")
        if not sep or not field_id:
            raise ValueError(f"Expected ID=VALUE, got {item!r}")
        pairs.append((field_id.strip(), value))
    return pairs


def _print_session(session: SettingsSession) -> None:
    for line in describe_session(session):
        print(line)


def run(args: argparse.Namespace) -> int:
    """Execute a parsed command."""
    settings = load_config(config_path=args.config, env_path=args.env_file)
    configure_from_settings(settings.logging)

    schema_path = args.schema or (Path(settings.schema_path) if settings.schema_path else None)
    if schema_path is None:
        print("Error: no schema given (use --schema or schema_path in config)", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        schema = load_schema(schema_path)
        session = SettingsSession(
            schema,
            namespace=args.namespace or settings.namespace,
            adapter=build_adapter(settings),
        )
    except SchemaError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    session.init()
    try:
        if args.command == "show":
            _print_session(session)
            return EXIT_SUCCESS

        session.open()

        if args.command == "set":
            try:
                pairs = _parse_assignments(args.assignments)
                for field_id, value in pairs:
                    if not session.set_field_value(field_id, value):
                        raise ValueError(f"Field '{field_id}' is disabled")
            except (KeyError, ValueError) as e:
                session.cancel()
                print(f"Error: {e}", file=sys.stderr)
                return EXIT_ERROR
        elif args.command == "toggle":
            try:
                expanded = session.toggle_group(args.group_id)
            except KeyError as e:
                session.cancel()
                print(f"Error: {e}", file=sys.stderr)
                return EXIT_ERROR
            session.cancel()
            if expanded is None:
                print(f"Group '{args.group_id}' follows its controlling field", file=sys.stderr)
                return EXIT_ERROR
            print(f"{args.group_id}: {'expanded' if expanded else 'collapsed'}")
            return EXIT_SUCCESS
        elif args.command == "reset":
            session.reset_to_defaults()

        if not session.commit():
            for field_id in session.invalid_fields():
                result = session.validation_result(field_id)
                print(f"Invalid {field_id}: {result.error}", file=sys.stderr)
            session.cancel()
            return EXIT_INVALID

        _print_session(session)
        return EXIT_SUCCESS
    finally:
        session.close()
        session.adapter.close()


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
