import sys
import argparse
from engine_cli.core.config import settings
from engine_cli.commands.relationships import add_relationship_commands


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ontology Relationship Engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  engine-cli discover --project <uuid> --datasource <uuid>
  engine-cli list --project <uuid> --active-only
  engine-cli add --project <uuid> --datasource <uuid> channels.owner_id users.id
  ENGINE_CLI_OUTPUT=json engine-cli diagnostics --project <uuid> --datasource <uuid>
        """
    )

    # Global args
    parser.add_argument("--url", help="Override API URL")
    parser.add_argument("--format", choices=["json", "table"], help="Output format")
    parser.add_argument("--debug", action="store_true", help="Print requests to stderr")

    subparsers = parser.add_subparsers(dest="command", title="Commands")
    add_relationship_commands(subparsers)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    # Apply overrides
    if args.url:
        settings.api_url = args.url.rstrip("/")
    if args.format:
        settings.output_format = args.format
    if args.debug:
        settings.debug = True

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))


if __name__ == "__main__":
    main()
