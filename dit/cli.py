from __future__ import annotations

import argparse
import sys
from datetime import datetime

from rich.console import Console

from . import __version__
from .config import LIST_MODES, load_dit_toml
from .errors import DitError, InvalidInputError, ParseError
from .paths import data_paths, resolve_data_root
from .render import check_lines, print_listing, status_table
from .runtime_log import LogHooks, emit_log
from .session import Tracker
from .timeutil import resolve_at
from .views import LIST_FIELDS, format_short_status, parse_fields


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_FATAL = 3
EXIT_INTERRUPTED = 130

AT_HELP = "Use the given datetime instead of 'now': YYYY-MM-DD-HH:MM[:SS], HH:MM[:SS] or e.g. --at=-15min."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dit",
        description="dit: track the time you spend working on tasks",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-d",
        "--directory",
        help="Data directory. Default: the closest '.dit' directory upward, else ~/.dit.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Print what is being done (repeat for more detail).",
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    new = sub.add_parser("new", aliases=["n"], help="Create a new task.")
    new.add_argument("task", help="Task key; use '/' to nest tasks, e.g. 'foo/bar'.")
    new.add_argument("title", nargs="?", help="Title of the task (defaults to the key).")
    new.set_defaults(func=cmd_new)

    work_on = sub.add_parser("work-on", aliases=["w"], help="Start clocking on a task (created if unseen).")
    work_on.add_argument("task")
    work_on.add_argument("-a", "--at", help=AT_HELP)
    work_on.add_argument("-t", "--title", help="Title if the task gets created.")
    work_on.set_defaults(func=cmd_work_on)

    halt = sub.add_parser("halt", aliases=["h"], help="Stop clocking on the active task.")
    halt.add_argument("-a", "--at", help=AT_HELP)
    halt.set_defaults(func=cmd_halt)

    append = sub.add_parser(
        "append",
        help="Record a finished entry on a task. Put '--' before relative times such as -2h.",
    )
    append.add_argument("task")
    append.add_argument("start", help="Start of the entry (same formats as --at).")
    append.add_argument("end", help="End of the entry (same formats as --at).")
    append.set_defaults(func=cmd_append)

    reopen = sub.add_parser("reopen", aliases=["a"], help="Undo the previous 'halt'.")
    reopen.set_defaults(func=cmd_reopen)

    cancel = sub.add_parser("cancel", aliases=["c"], help="Undo the previous 'work-on'.")
    cancel.set_defaults(func=cmd_cancel)

    resume = sub.add_parser("resume", aliases=["r"], help="Start clocking on the last active task.")
    resume.add_argument("index", nargs="?", type=int, default=0, help="Resume the I'th previous task.")
    resume.add_argument("-a", "--at", help=AT_HELP)
    resume.set_defaults(func=cmd_resume)

    switch_to = sub.add_parser(
        "switch-to",
        aliases=["t"],
        help="Stop clocking on the active task and start on another one.",
    )
    switch_to.add_argument("task")
    switch_to.add_argument("-a", "--at", help=AT_HELP)
    switch_to.add_argument("-t", "--title", help="Title if the task gets created.")
    switch_to.set_defaults(func=cmd_switch_to)

    switch_back = sub.add_parser(
        "switch-back",
        aliases=["b"],
        help="Stop clocking on the active task and return to the one it preempted.",
    )
    switch_back.add_argument("-a", "--at", help=AT_HELP)
    switch_back.set_defaults(func=cmd_switch_back)

    status = sub.add_parser("status", aliases=["s"], help="Print the most recent tasks.")
    status.add_argument("-n", "--limit", type=int, help="Limit to the last NUM tasks.")
    status.add_argument("-r", "--rebuild-index", action="store_true", help="Rebuild the index first.")
    status.add_argument(
        "-s",
        "--short",
        action="store_true",
        help="Print just the active task and how long it has been active.",
    )
    status.set_defaults(func=cmd_status)

    listing = sub.add_parser("list", aliases=["l"], help="List log entries, most recent first.")
    listing.add_argument("tasks", nargs="*", help="Only list these tasks.")
    listing.add_argument("--mode", choices=LIST_MODES, help="Presentation of the entries.")
    listing.add_argument("--daily", action="store_true", help="Show daily summaries (group-by-day).")
    listing.add_argument("--daily-only", action="store_true", help="Show only daily summaries.")
    listing.add_argument("--after", help="Only entries starting at or after this datetime.")
    listing.add_argument("--before", help="Only entries starting before this datetime.")
    listing.add_argument("--fields", help=f"Comma separated columns: {','.join(LIST_FIELDS)}.")
    listing.add_argument("--check", action="store_true", help="Report overlaps and index drift.")
    listing.set_defaults(func=cmd_list)

    rebuild = sub.add_parser("rebuild-index", help="Recompute the index from every task log.")
    rebuild.set_defaults(func=cmd_rebuild_index)

    path = sub.add_parser("path", help="Print the file holding a task's log (for editing).")
    path.add_argument("task")
    path.set_defaults(func=cmd_path)

    return parser


def _at(tracker: Tracker, value: str | None) -> datetime:
    try:
        return resolve_at(value, base=tracker.now())
    except ParseError as exc:
        raise InvalidInputError(str(exc), field=exc.field) from exc


def _optional_at(tracker: Tracker, value: str | None) -> datetime | None:
    return _at(tracker, value) if value is not None else None


def cmd_new(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.new(args.task, args.title)
    return EXIT_OK


def cmd_work_on(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.work_on(args.task, at=_optional_at(tracker, args.at), title=args.title)
    return EXIT_OK


def cmd_halt(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.halt(at=_optional_at(tracker, args.at))
    return EXIT_OK


def cmd_append(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.append(args.task, _at(tracker, args.start), _at(tracker, args.end))
    return EXIT_OK


def cmd_reopen(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.reopen()
    return EXIT_OK


def cmd_cancel(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.cancel()
    return EXIT_OK


def cmd_resume(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.resume(at=_optional_at(tracker, args.at), index=args.index)
    return EXIT_OK


def cmd_switch_to(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.switch_to(args.task, at=_optional_at(tracker, args.at), title=args.title)
    return EXIT_OK


def cmd_switch_back(tracker: Tracker, args: argparse.Namespace) -> int:
    tracker.switch_back(at=_optional_at(tracker, args.at))
    return EXIT_OK


def cmd_status(tracker: Tracker, args: argparse.Namespace) -> int:
    if args.rebuild_index:
        emit_log("Rebuilding index", level="debug", hooks=tracker.hooks)
        tracker.rebuild_index()

    limit = args.limit if args.limit is not None else tracker.config.status.limit
    report = tracker.status(limit=limit)
    if report.stale:
        emit_log("another dit process holds the lock; status may be stale", level="warn", hooks=tracker.hooks)

    if args.short:
        line = format_short_status(report)
        if line:
            print(line)
        return EXIT_OK

    Console().print(status_table(report))
    return EXIT_OK


def cmd_list(tracker: Tracker, args: argparse.Namespace) -> int:
    if args.mode:
        mode = args.mode
    elif args.daily_only:
        mode = "daily"
    elif args.daily:
        mode = "group-by-day"
    else:
        mode = tracker.config.list.mode

    try:
        fields = parse_fields(args.fields)
    except ValueError as exc:
        raise InvalidInputError(str(exc), field="fields") from exc

    report = tracker.listing(
        keys=args.tasks or None,
        after=_optional_at(tracker, args.after),
        before=_optional_at(tracker, args.before),
    )
    if report.stale:
        emit_log("another dit process holds the lock; listing may be stale", level="warn", hooks=tracker.hooks)

    print_listing(Console(), report.items, mode=mode, fields=fields, now=tracker.now())

    if args.check:
        problems = check_lines(tracker.check())
        for line in problems:
            emit_log(line, level="warn", hooks=tracker.hooks)
        if not problems:
            emit_log("check: no problems found", level="info", hooks=tracker.hooks)
    return EXIT_OK


def cmd_rebuild_index(tracker: Tracker, args: argparse.Namespace) -> int:
    index = tracker.rebuild_index()
    emit_log(f"Rebuilt index: {len(index)} task(s)", level="info", hooks=tracker.hooks)
    return EXIT_OK


def cmd_path(tracker: Tracker, args: argparse.Namespace) -> int:
    print(tracker.task_path(args.task))
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        root = resolve_data_root(args.directory)
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    paths = data_paths(root)
    config, warning = load_dit_toml(paths.config_toml)
    hooks = LogHooks(
        verbosity=args.verbose + config.log.verbosity,
        log_file=paths.log_file if config.log.file else None,
    )
    if warning:
        emit_log(warning, level="warn", hooks=hooks)
    emit_log(f"Using data directory: {root}", level="debug", hooks=hooks)

    tracker = Tracker(root, config=config, hooks=hooks)
    try:
        return args.func(tracker, args)
    except DitError as exc:
        emit_log(f"{exc} [{exc.kind}]", level="error", hooks=hooks)
        return EXIT_FATAL if exc.fatal else EXIT_FAILURE
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())
