# src/taskwise/cli/commands.py

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence

from ..core.state import AppState
from ..maintenance.backfill import backfill_task_canonical_ids, check_board_items
from ..maintenance.board_items import dedupe_board_items
from ..maintenance.dedupe import dedupe_tasks

CommandHandler = Callable[[AppState, list[str]], str]

logger = logging.getLogger(__name__)


class CommandError(ValueError):
    """Bad command-line usage (unknown flag, missing value)."""


class CommandRegistry:
    """Maintenance command registry used by the CLI (help, status, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, argv: Sequence[str]) -> str:
        """
        Run "command [args...]".
        Raises CommandError for unknown commands or bad arguments.
        """
        parts = list(argv)
        if not parts:
            raise CommandError("No command given. Use `help` to list available commands.")

        name = parts[0].lower()
        handler = self._handlers.get(name)
        if not handler:
            raise CommandError(f"Unknown command: {name}. Use `help` to list available commands.")

        logger.debug("Running command %s args=%s", name, parts[1:])
        return handler(state, parts[1:])

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  {name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _parse_flags(
    args: list[str],
    *,
    allowed: set[str],
    valued: frozenset[str] | set[str] = frozenset(),
) -> dict[str, str | bool]:
    out: dict[str, str | bool] = {}
    it = iter(args)
    for arg in it:
        if not arg.startswith("--"):
            raise CommandError(f"Unexpected argument: {arg}")
        name, sep, value = arg[2:].partition("=")
        if name not in allowed and name not in valued:
            raise CommandError(f"Unknown option: --{name}")
        if name in valued:
            if not sep:
                value = next(it, "")
            if not value:
                raise CommandError(f"--{name} needs a value")
            out[name] = value
        else:
            out[name] = True
    return out


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    counts = state.store.count_by_collection()
    lines = [
        "Status:",
        f"  Store: {getattr(settings, 'store_db_path', '?')}",
        f"  Match threshold: {getattr(settings, 'completion_match_threshold', '?')}",
        f"  Auto-approve: {'ON' if getattr(settings, 'auto_approve_completed_tasks', False) else 'OFF'}",
        f"  Prune policy: {getattr(settings, 'prune_policy', '?')}",
        "  Documents:",
    ]
    if not counts:
        lines.append("    (empty)")
    for collection, n in counts.items():
        lines.append(f"    {collection}: {n}")
    return "\n".join(lines)


def cmd_backfill(state: AppState, args: list[str]) -> str:
    """
    backfill-canonical-ids        -> dry run, list what would change
    backfill-canonical-ids --fix  -> write task_canonical_id on board items
    """
    flags = _parse_flags(args, allowed={"fix"})
    report = backfill_task_canonical_ids(state.store, fix=bool(flags.get("fix")))
    lines = [f"Scanned {report.scanned} board item(s), resolved {report.resolved}, updated {report.updated}."]
    for item_id, canonical_id in report.planned:
        lines.append(f"  {item_id} -> {canonical_id}")
    if report.dry_run and report.resolved:
        lines.append("Dry run. Use --fix to apply.")
    return "\n".join(lines)


def cmd_check_board_items(state: AppState, args: list[str]) -> str:
    _parse_flags(args, allowed=set())
    check = check_board_items(state.store)
    lines = [f"boardItems total={check.total}, missing_task_canonical_id={check.missing}, present={check.present}"]
    if check.samples:
        lines.append(f"Sample docs (up to {len(check.samples)}):")
        lines.extend(json.dumps(d, ensure_ascii=False, default=str) for d in check.samples)
    return "\n".join(lines)


def cmd_dedupe(state: AppState, args: list[str]) -> str:
    """
    dedupe-tasks                 -> report duplicate groups
    dedupe-tasks --fix           -> keep one document per group, delete the rest
    dedupe-tasks --limit N       -> look at most N groups (default 100)
    """
    flags = _parse_flags(args, allowed={"fix"}, valued={"limit"})
    try:
        limit = int(flags.get("limit", 100))
    except ValueError as e:
        raise CommandError("--limit must be an integer") from e

    report = dedupe_tasks(state.store, fix=bool(flags.get("fix")), limit=limit)
    if not report.groups:
        return "No duplicates found."

    lines = [f"Found {len(report.groups)} duplicate group(s), {report.extra_documents} extra document(s)."]
    for g in report.groups[:20]:
        lines.append(
            f"  user={g.user_id} session={g.source_session_id} source_task_id={g.source_task_id} "
            f"ids={', '.join(g.ids)} keep={g.keep_id}"
        )
    if report.dry_run:
        lines.append("Dry run. Use --fix to remove duplicates.")
    else:
        lines.append(f"Removed {report.deleted} document(s), moved {report.repointed} board item(s) to the kept task.")
    return "\n".join(lines)


def cmd_dedupe_board_items(state: AppState, args: list[str]) -> str:
    """
    dedupe-board-items          -> report what would change
    dedupe-board-items --fix    -> normalize task_id, delete duplicate board items
    (--apply is accepted as a synonym of --fix)
    """
    flags = _parse_flags(args, allowed={"fix", "apply"})
    report = dedupe_board_items(state.store, fix=bool(flags.get("fix") or flags.get("apply")))

    lines = [
        f"task_id normalization: {report.to_normalize} item(s)"
        + ("" if report.dry_run else f", updated {report.normalized}"),
        f"Found {len(report.groups)} duplicate group(s), {report.extra_documents} extra document(s).",
    ]
    for g in report.groups[:10]:
        lines.append(f"  board={g.board_id} task={g.task_id} keep={g.keep_id} drop={', '.join(g.drop_ids)}")
    if report.dry_run:
        lines.append("Dry run. Use --fix to delete duplicate board items.")
    else:
        lines.append(f"Deleted {report.deleted} duplicate board item(s).")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show settings and document counts.")
registry.register(
    "backfill-canonical-ids",
    cmd_backfill,
    help_text="Resolve board items to canonical task ids: backfill-canonical-ids [--fix].",
)
registry.register(
    "check-board-items",
    cmd_check_board_items,
    help_text="Count board items with/without a canonical task id.",
)
registry.register(
    "dedupe-tasks",
    cmd_dedupe,
    help_text="Find duplicate canonical tasks: dedupe-tasks [--fix] [--limit N].",
)
registry.register(
    "dedupe-board-items",
    cmd_dedupe_board_items,
    help_text="Collapse duplicate board items per board and task: dedupe-board-items [--fix].",
)
