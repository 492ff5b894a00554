"""Interactive console for operating a running filtering engine."""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import PromptSession

from mailsift.datatypes.rule_datatypes import RuleCategory
from mailsift.engine import MailsiftEngine
from mailsift.errors import MailsiftError
from mailsift.util.logger import get_logger
from mailsift.util.time_utils import utcnow

# Box drawing helpers for aligned console output
BOX_WIDTH = 60

logger = get_logger("console")

# Type alias for console handler functions
CommandHandler = Callable[["ConsoleControl", list[str]], Awaitable[None]]


def print_boxed_title(title: str, color: str = "") -> None:
    """
    Print a centered title inside a box drawn with Unicode box-drawing characters.

    Args:
        title (str): The text to display in the center of the box.
        color (str): Optional prompt_toolkit style applied to the entire box.
    """
    inner_width = BOX_WIDTH - 2
    pad_left = (inner_width - len(title)) // 2
    pad_right = inner_width - len(title) - pad_left
    top = f"╔{'═' * inner_width}╗"
    mid = f"║{' ' * pad_left}{title}{' ' * pad_right}║"
    bot = f"╚{'═' * inner_width}╝"
    for line in (top, mid, bot):
        console_print(line, color)


def console_print(message: str, style: str = "") -> None:
    """Print text through prompt_toolkit without breaking an active prompt."""
    formatted: FormattedText | str
    if style:
        formatted = FormattedText([(style, message)])
    else:
        formatted = message
    print_formatted_text(formatted)


def _fmt_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC") if value else "never"


@dataclass
class Command:
    """
    Definition of a console command with handler and metadata.

    Attributes:
        name (str): Primary name of the command.
        handler (CommandHandler): Async function to execute when invoked.
        aliases (list[str]): Alternative names that trigger this command.
        description (str): Human-readable description shown in help text.
        usage (str): Optional usage string showing command syntax.
    """
    name: str
    handler: CommandHandler
    aliases: list[str]
    description: str
    usage: str = ""

    def matches(self, input_cmd: str) -> bool:
        """Check if input matches this command or any alias."""
        return input_cmd == self.name or input_cmd in self.aliases


class ConsoleControl:
    """
    Lifecycle flag plus a reference to the engine the commands operate on.

    Attributes:
        shutdown_event (asyncio.Event): Signals that the operator asked to quit.
    """

    def __init__(self, engine: MailsiftEngine | None = None) -> None:
        self.shutdown_event = asyncio.Event()
        self._engine = engine

    def set_engine(self, engine: MailsiftEngine | None) -> None:
        self._engine = engine

    @property
    def engine(self) -> MailsiftEngine | None:
        return self._engine

    def request_shutdown(self) -> None:
        self.shutdown_event.set()

    def stop(self) -> None:
        self.shutdown_event.set()

    def is_shutdown_requested(self) -> bool:
        return self.shutdown_event.is_set()


def _require_engine(control: ConsoleControl) -> MailsiftEngine | None:
    if control.engine is None:
        console_print("Engine not initialized.", "ansiyellow")
    return control.engine


# ==================== Command Handlers ====================

async def cmd_help(control: ConsoleControl, args: list[str]) -> None:
    """Display available commands and their descriptions."""
    print_boxed_title("Console Commands Reference", "ansigreen")
    for cmd in COMMANDS:
        aliases_str = f" (aliases: {', '.join(cmd.aliases)})" if cmd.aliases else ""
        console_print(f"\n  {cmd.name}{aliases_str}", "ansicyan")
        console_print(f"    {cmd.description}")
        if cmd.usage:
            console_print(f"    Usage: {cmd.usage}", "ansibrightblack")
    console_print("")


async def cmd_status(control: ConsoleControl, args: list[str]) -> None:
    """
    Display cache, promotion and traffic counters.

    Shows the pattern cache state (size, version, staleness, hit ratio), the
    dynamic rule manager counters and the global decision totals.
    """
    engine = _require_engine(control)
    if engine is None:
        return

    print_boxed_title("Engine Status", "ansimagenta")

    cache = engine.cache.stats()
    cache_state = "🔴 Stale" if cache["stale"] else "🟢 Fresh"
    console_print(f"  Cache:       {cache_state} (version {cache['version']}, {cache['size']} rules)")
    for category, size in cache["by_category"].items():
        console_print(f"    {category:<10} {size}")
    console_print(f"  Loaded at:   {_fmt_time(cache['loaded_at'])}")
    console_print(f"  Hits/Misses: {cache['hits']}/{cache['misses']}")

    manager = engine.dynamic_rules.stats()
    console_print(f"  Promotions:  {manager['promotions']} (failures: {manager['promotion_failures']})")
    console_print(f"  Last promo:  {_fmt_time(manager['last_promotion_at'])}")
    console_print(f"  Swept:       {manager['swept']} (last sweep: {_fmt_time(manager['last_sweep_at'])})")
    console_print(f"  Match errs:  {engine.match_engine.match_errors}")

    try:
        totals = await engine.stats.get_global_stats()
    except MailsiftError as exc:
        console_print(f"  Totals:      unavailable ({exc})", "ansiyellow")
    else:
        console_print(
            f"  Processed:   {totals.total_processed} "
            f"(forwarded {totals.total_forwarded}, dropped {totals.total_dropped})"
        )
    console_print("")


async def cmd_refresh(control: ConsoleControl, args: list[str]) -> None:
    """Force a full resynchronization of the pattern cache with the store."""
    engine = _require_engine(control)
    if engine is None:
        return
    if await engine.cache.refresh():
        console_print(f"Cache refreshed (version {engine.cache.snapshot().version}).", "ansigreen")
    else:
        console_print("Refresh failed; still serving the previous snapshot.", "ansibrightred")


async def cmd_sweep(control: ConsoleControl, args: list[str]) -> None:
    """Run an expired dynamic rule sweep immediately."""
    engine = _require_engine(control)
    if engine is None:
        return
    deleted = await engine.dynamic_rules.sweep_expired(utcnow())
    console_print(f"Swept {len(deleted)} expired dynamic rule(s).", "ansigreen")
    for rule_id in deleted:
        console_print(f"  • {rule_id}")


async def cmd_subjects(control: ConsoleControl, args: list[str]) -> None:
    """
    List the busiest subjects inside the current detection window.

    Usage: subjects [limit]
    """
    engine = _require_engine(control)
    if engine is None:
        return
    limit = int(args[0]) if args and args[0].isdigit() else 10
    config = await engine.dynamic_config.get()
    top = await engine.tracker.top_subjects(config.time_window_minutes, utcnow(), limit)

    print_boxed_title(f"Top Subjects (last {config.time_window_minutes} min)", "ansiblue")
    if not top:
        console_print("  No tracked subjects in the window.")
    for entry in top:
        marker = "🔥" if entry.count >= config.threshold_count else "  "
        console_print(f"  {marker} {entry.count:>5}  {entry.subject}")
    console_print("")


async def cmd_rules(control: ConsoleControl, args: list[str]) -> None:
    """
    List rules as the match path currently sees them.

    Usage: rules [whitelist|blacklist|dynamic]
    """
    engine = _require_engine(control)
    if engine is None:
        return
    categories = list(RuleCategory)
    if args:
        try:
            categories = [RuleCategory(args[0].lower())]
        except ValueError:
            console_print(f"Unknown category '{args[0]}'.", "ansibrightred")
            return

    for category in categories:
        rules = await engine.filter_engine.rules_for(category)
        print_boxed_title(f"{category.value.title()} Rules ({len(rules)})", "ansiblue")
        for rule in rules:
            expiry = f" expires {_fmt_time(rule.expires_at)}" if rule.expires_at else ""
            console_print(f"  • {rule.id[:8]} {rule.match_type}/{rule.match_mode} {rule.pattern!r}{expiry}")
    console_print("")


async def cmd_config(control: ConsoleControl, args: list[str]) -> None:
    """
    Show or change dynamic rule settings.

    Usage: config [key value]
    """
    engine = _require_engine(control)
    if engine is None:
        return

    if len(args) >= 2:
        key, raw = args[0], args[1]
        if key == "enabled":
            value: object = raw.lower() in ("1", "true", "yes", "on")
        elif raw.lower() in ("off", "none") and key in ("time_span_threshold_minutes", "last_hit_threshold_hours"):
            value = None
        else:
            try:
                value = int(raw)
            except ValueError:
                console_print(f"'{raw}' is not a number.", "ansibrightred")
                return
        try:
            await engine.dynamic_config.update(**{key: value})
        except MailsiftError as exc:
            console_print(f"Rejected: {exc}", "ansibrightred")
            return

    config = await engine.dynamic_config.get()
    print_boxed_title("Dynamic Rule Settings", "ansimagenta")
    for key, value in config.to_rows().items():
        console_print(f"  {key:<28} {value or 'off'}")
    console_print("")


async def cmd_perf(control: ConsoleControl, args: list[str]) -> None:
    """Print rule store query timings."""
    engine = _require_engine(control)
    if engine is None:
        return
    if args and args[0] == "reset":
        engine.database.reset_db_performance_stats()
        console_print("Query timings reset.", "ansigreen")
        return
    console_print(engine.database.db_perf_mon.get_summary())


async def cmd_optimize(control: ConsoleControl, args: list[str]) -> None:
    """Run ANALYZE and VACUUM on the rule store."""
    engine = _require_engine(control)
    if engine is None:
        return
    analyzed = await engine.database.analyze()
    vacuumed = await engine.database.vacuum()
    if analyzed and vacuumed:
        console_print("Rule store optimized.", "ansigreen")
    else:
        console_print("Optimization failed, see the log for details.", "ansibrightred")


async def cmd_clear(control: ConsoleControl, args: list[str]) -> None:
    """Clear the console screen."""
    os.system('cls' if os.name == 'nt' else 'clear')
    console_print("Console cleared.", "ansibrightcyan")


async def cmd_quit(control: ConsoleControl, args: list[str]) -> None:
    """Request graceful engine shutdown."""
    console_print("Shutdown requested.", "ansiyellow")
    control.request_shutdown()


# ==================== Command Registry ====================

COMMANDS: list[Command] = [
    Command(
        name="help",
        handler=cmd_help,
        aliases=["h", "?"],
        description="Show this help message with all available commands",
    ),
    Command(
        name="status",
        handler=cmd_status,
        aliases=["stat", "info"],
        description="Display cache, promotion and traffic counters",
    ),
    Command(
        name="refresh",
        handler=cmd_refresh,
        aliases=["resync"],
        description="Reload the pattern cache from the rule store",
    ),
    Command(
        name="sweep",
        handler=cmd_sweep,
        aliases=[],
        description="Delete expired dynamic rules now",
    ),
    Command(
        name="subjects",
        handler=cmd_subjects,
        aliases=["top"],
        description="List the busiest subjects in the detection window",
        usage="subjects [limit]",
    ),
    Command(
        name="rules",
        handler=cmd_rules,
        aliases=["r"],
        description="List enabled rules by category",
        usage="rules [whitelist|blacklist|dynamic]",
    ),
    Command(
        name="config",
        handler=cmd_config,
        aliases=["cfg"],
        description="Show or change dynamic rule settings",
        usage="config [enabled|time_window_minutes|threshold_count|expiration_hours|time_span_threshold_minutes|last_hit_threshold_hours value]",
    ),
    Command(
        name="perf",
        handler=cmd_perf,
        aliases=["db"],
        description="Show rule store query timings",
        usage="perf [reset]",
    ),
    Command(
        name="optimize",
        handler=cmd_optimize,
        aliases=["vacuum"],
        description="Run ANALYZE and VACUUM on the rule store",
    ),
    Command(
        name="clear",
        handler=cmd_clear,
        aliases=["cls"],
        description="Clear the console screen",
    ),
    Command(
        name="quit",
        handler=cmd_quit,
        aliases=["exit", "shutdown", "stop"],
        description="Gracefully shut down the engine",
    ),
]


# ==================== Command Dispatcher ====================

async def handle_console_command(command: str, control: ConsoleControl) -> None:
    """
    Parse and execute a console line.

    Splits the input into command name and arguments, finds the matching
    command in the registry and executes its handler.
    """
    if not command.strip():
        return

    parts = command.strip().split()
    cmd_name = parts[0].lower()
    args = parts[1:]

    for cmd in COMMANDS:
        if cmd.matches(cmd_name):
            try:
                await cmd.handler(control, args)
            except Exception as exc:
                logger.exception("Error executing command '%s': %s", cmd_name, exc)
                console_print(f"Error executing command: {exc}", "ansibrightred")
            return

    console_print(f"Unknown command '{cmd_name}'. Type 'help' for available commands.", "ansibrightred")


async def run_console(control: ConsoleControl) -> None:
    """Read and dispatch commands until shutdown is requested."""
    session = PromptSession("> ")

    print_boxed_title("mailsift Interactive Console", "ansicyan")
    console_print("Type 'help' for available commands or 'quit' to exit.\n", "ansibrightblack")

    with patch_stdout():
        while not control.is_shutdown_requested():
            try:
                line = await session.prompt_async()
                if line.strip():
                    await handle_console_command(line, control)
            except (EOFError, KeyboardInterrupt):
                console_print("\nShutdown requested by user.", "ansibrightyellow")
                control.request_shutdown()
                break


@asynccontextmanager
async def console_session(control: ConsoleControl) -> AsyncIterator[ConsoleControl]:
    """
    Run the console in a background task for the duration of the context.

    Example:
        async with console_session(control):
            await control.shutdown_event.wait()
    """
    console_task = asyncio.create_task(run_console(control))
    try:
        yield control
    finally:
        control.stop()
        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass
