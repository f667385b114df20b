import asyncio
import sys
from argparse import ArgumentParser, Namespace
from typing import Optional

from couchsync import CouchSync
from couchsync.api.error import CouchError
from couchsync.api.replication import Replication
from couchsync.api.sync import Sync
from couchsync.logging import LogLevel, couch_error


def _parser() -> ArgumentParser:
    ap = ArgumentParser(
        prog="couchsync",
        description="Inspects conflicts and drives replication on a multi-master document store",
    )
    ap.add_argument(
        "--config",
        metavar="PATH",
        help="The path to the JSON configuration for couchsync",
        required=True,
    )
    ap.add_argument(
        "--log-level",
        metavar="LEVEL",
        choices=[level.value for level in LogLevel],
        help="The log level output for the run",
        default="warning",
    )
    ap.add_argument(
        "--server",
        metavar="URL",
        help="The configured server to talk to (default: the first one)",
    )
    sub = ap.add_subparsers(dest="command", required=True)

    conflicts = sub.add_parser("conflicts", help="List or count conflicted documents")
    conflicts.add_argument("db", metavar="DB", help="The database to scan")
    conflicts.add_argument(
        "--force-index",
        action="store_true",
        help="Create the conflict index if it is missing",
    )
    conflicts.add_argument(
        "--count", action="store_true", help="Print only the number of conflicts"
    )

    replicate = sub.add_parser("replicate", help="Start a replication or a sync")
    replicate.add_argument("source", metavar="SOURCE", help="The database to replicate from")
    replicate.add_argument("target", metavar="TARGET", help="The database to replicate into")
    replicate.add_argument(
        "--target-server",
        metavar="URL",
        help="The configured server hosting TARGET (default: same as SOURCE)",
    )
    replicate.add_argument(
        "--continuous",
        action="store_true",
        help="Keep replicating until cancelled",
    )
    replicate.add_argument(
        "--sync", action="store_true", help="Replicate in both directions"
    )

    sub.add_parser("tasks", help="List the active tasks of the server")
    return ap


async def _run(couch: CouchSync, args: Namespace) -> None:
    server = couch.server(args.server)
    if args.command == "conflicts":
        db = server.database(args.db)
        if args.count:
            print(await db.conflicts_count(args.force_index))
        else:
            for key in await db.conflicts(args.force_index):
                print(key)
    elif args.command == "replicate":
        target_server = (
            couch.server(args.target_server) if args.target_server else server
        )
        source = server.database(args.source)
        target = target_server.database(args.target)
        if args.sync:
            sync = await Sync.start(source, target, args.continuous)
            print(f"{sync.a_to_b.session_id}\t{source.name} -> {target.name}")
            print(f"{sync.b_to_a.session_id}\t{target.name} -> {source.name}")
        else:
            repl = await Replication.start(source, target, args.continuous)
            print(f"{repl.session_id}\t{source.name} -> {target.name}")
    elif args.command == "tasks":
        for task in await server.active_tasks():
            print(f"{task.type}\t{task.replication_id or ''}")


async def cli_main(argv: Optional[list[str]] = None) -> int:
    args = _parser().parse_args(argv)
    couch = await CouchSync.create(args.config, LogLevel(args.log_level))
    try:
        await _run(couch, args)
    except CouchError as e:
        couch_error(f"{args.command} failed: {e}")
        print(f"couchsync: {e}", file=sys.stderr)
        return 1
    finally:
        await couch.close()

    return 0


def main() -> None:
    sys.exit(asyncio.run(cli_main()))


if __name__ == "__main__":
    main()
