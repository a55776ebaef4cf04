import argparse
from engine_cli.core.client import client
from engine_cli.core.formatter import formatter

RELATIONSHIP_COLUMNS = (
    "id", "source_table", "source_column", "target_table", "target_column",
    "relationship_type", "confidence", "cardinality", "status",
)


def add_relationship_commands(subparsers):
    project_parser = argparse.ArgumentParser(add_help=False)
    project_parser.add_argument("--project", required=True, help="Project UUID")

    datasource_parser = argparse.ArgumentParser(add_help=False)
    datasource_parser.add_argument("--datasource", required=True, help="Datasource UUID")

    discover = subparsers.add_parser(
        "discover", parents=[project_parser, datasource_parser], help="Run relationship discovery"
    )
    discover.add_argument(
        "--strategy", choices=["all", "foreign_key", "pk_match"], default="all",
        help="Strategies to run"
    )
    discover.set_defaults(func=discover_relationships)

    sync = subparsers.add_parser(
        "sync", parents=[project_parser, datasource_parser], help="Sync tables and columns"
    )
    sync.set_defaults(func=sync_schema)

    diagnostics = subparsers.add_parser(
        "diagnostics", parents=[project_parser, datasource_parser], help="Show empty and orphan tables"
    )
    diagnostics.set_defaults(func=show_diagnostics)

    list_parser = subparsers.add_parser("list", parents=[project_parser], help="List relationships")
    list_parser.add_argument("--active-only", action="store_true", help="Hide rejected relationships")
    list_parser.set_defaults(func=list_relationships)

    add = subparsers.add_parser(
        "add", parents=[project_parser, datasource_parser], help="Add a manual relationship"
    )
    add.add_argument("source", help="Source column as table.column")
    add.add_argument("target", help="Target column as table.column")
    add.add_argument("--description", help="Why the relationship exists")
    add.add_argument(
        "--cardinality", choices=["1:1", "N:1", "1:N", "N:M"], help="Join shape source:target (default N:1)"
    )
    add.set_defaults(func=add_relationship)

    for name, func, help_text in (
        ("remove", remove_relationship, "Remove (reject) a relationship"),
        ("approve", approve_relationship, "Approve a pending relationship"),
        ("reject", reject_relationship, "Reject a relationship"),
    ):
        action = subparsers.add_parser(name, parents=[project_parser], help=help_text)
        action.add_argument("relationship_id", help="Relationship UUID")
        action.set_defaults(func=func)


def split_column_ref(ref: str):
    """'orders.user_id' -> ('orders', 'user_id'); the column part may not contain dots."""
    table, sep, column = ref.rpartition(".")
    if not sep or not table or not column:
        raise argparse.ArgumentTypeError(f"Expected table.column, got '{ref}'")
    return table, column


def _project_path(args) -> str:
    return f"/projects/{args.project}"


def _datasource_path(args) -> str:
    return f"{_project_path(args)}/datasources/{args.datasource}"


def discover_relationships(args):
    data = client.post(f"{_datasource_path(args)}/relationships/discover", {"strategy": args.strategy})
    formatter.print(data, "Discovery")


def sync_schema(args):
    data = client.post(f"{_datasource_path(args)}/schema/sync")
    formatter.print(data, "Schema sync")


def show_diagnostics(args):
    data = client.get(f"{_datasource_path(args)}/relationships/diagnostics")
    formatter.print(data, "Diagnostics")


def list_relationships(args):
    query = "?active_only=true" if args.active_only else ""
    data = client.get(f"{_project_path(args)}/relationships{query}")
    formatter.print(data["relationships"], "Relationships", RELATIONSHIP_COLUMNS)


def add_relationship(args):
    source_table, source_column = split_column_ref(args.source)
    target_table, target_column = split_column_ref(args.target)
    payload = {
        "source_table": source_table,
        "source_column": source_column,
        "target_table": target_table,
        "target_column": target_column,
    }
    if args.description:
        payload["description"] = args.description
    if args.cardinality:
        payload["cardinality"] = args.cardinality
    data = client.post(f"{_datasource_path(args)}/relationships", payload)
    formatter.print(data, "Relationship", RELATIONSHIP_COLUMNS)


def remove_relationship(args):
    client.delete(f"{_project_path(args)}/relationships/{args.relationship_id}")
    print(f"Relationship {args.relationship_id} removed")


def approve_relationship(args):
    data = client.post(f"{_project_path(args)}/relationships/{args.relationship_id}/approve")
    formatter.print(data, "Relationship", RELATIONSHIP_COLUMNS)


def reject_relationship(args):
    data = client.post(f"{_project_path(args)}/relationships/{args.relationship_id}/reject")
    formatter.print(data, "Relationship", RELATIONSHIP_COLUMNS)
