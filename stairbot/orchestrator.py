"""
Main Orchestrator for the Stairs Bot

This module ties together all the components and defines the
end-to-end flow for one inbound message:

    message → command → validate → mutate ledger → save → reply

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing changes unless the input passed validation
- A reply to a mutating command is sent only after its save finished
- Every mutation and every rejection is audited

All state lives in the StairsFlow instance (ledger, store, the set of
users we are waiting on for a name). There are no module globals, so
tests can run any number of independent bots side by side.
"""

from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from stairbot import dates
from stairbot.audit import AuditLogger, configure_logging, create_correlation_id
from stairbot.config import ChartSettings, get_settings
from stairbot.dates import Clock, InvalidDateFormatError
from stairbot.ledger import (
    InsufficientDayBalanceError,
    InvalidAmountError,
    InvalidNameError,
    Ledger,
    LedgerError,
    UserNotFoundError,
    parse_amount,
)
from stairbot.models.messages import CommandResult, InboundMessage
from stairbot.queries import (
    build_daily_series,
    last_days_title,
    leaderboard,
    range_title,
    render_day_list,
    render_leaderboard,
)
from stairbot.services import (
    AuditStorageInterface,
    JsonFileLedgerStorage,
    JsonlAuditStorage,
    LedgerStorageInterface,
    LedgerStore,
)


logger = structlog.get_logger(__name__)


INFO_TEXT = (
    "Commands:\n"
    "/stairs <amount> - add stairs for today (e.g. /stairs 120)\n"
    "/update <date> <amount> - correct a day; date is YYYY-MM-DD or DD.MM, "
    "amount may be negative (e.g. /update 27.10 -2)\n"
    "/list - your stairs per day\n"
    "/stat [start end] - leaderboard and daily chart "
    "(e.g. /stat 2024-10-01 2024-10-31)\n"
    "/info - this help"
)

ASK_NAME_TEXT = (
    "Hi! I count the stairs you climb.\n"
    "Please send your name in one message (e.g. \"Renat\"). "
    "Commands become available after that."
)
REGISTER_FIRST_TEXT = "Please register first: send /start and enter your name."
UNKNOWN_COMMAND_TEXT = "Unknown command. Send /info to see what I can do."
STAIRS_USAGE_TEXT = "Usage: /stairs <amount>\nExample: /stairs 120"
UPDATE_USAGE_TEXT = (
    "Usage: /update <date> <amount>\n"
    "Date: YYYY-MM-DD or DD.MM\n"
    "Amount may be negative, e.g. /update 27.10 -2"
)
INTERNAL_ERROR_TEXT = "Something went wrong on our side. Please try again."


Handler = Callable[[InboundMessage, UUID], Awaitable[CommandResult]]


class StairsFlow:
    """
    Orchestrates every command of the bot.

    Flow for mutating commands (/stairs, /update, name capture):
    1. Parse → text to date key / amount / name
    2. Mutate → Ledger validates, then changes the record
    3. Save → LedgerStore queues the snapshot write and we await it
    4. Audit → event with the message's correlation id
    5. Reply → CommandResult for the transport

    Steps 1-2 reject bad input before anything changes; a rejection
    becomes CommandResult(success=False) and an audit event.
    """

    def __init__(
        self,
        ledger: Ledger,
        store: LedgerStore,
        audit_logger: Optional[AuditLogger] = None,
        chart_settings: Optional[ChartSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self._ledger = ledger
        self._store = store
        self._audit_logger = audit_logger
        self._chart = chart_settings or get_settings().chart
        self._clock = clock or ledger.clock
        # Users who sent /start and owe us a name
        self.awaiting_name: set[str] = set()

        self._handlers: dict[str, Handler] = {
            "start": self.handle_start,
            "info": self.handle_info,
            "help": self.handle_info,
            "stairs": self.handle_stairs,
            "update": self.handle_update,
            "list": self.handle_list,
            "stat": self.handle_stat,
        }
        # Commands usable before the user has a name
        self._open_commands = {"start", "info", "help"}

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def store(self) -> LedgerStore:
        return self._store

    async def shutdown(self) -> None:
        """Wait for pending saves, then stop the write queue."""
        await self._store.close()

    async def handle(
        self,
        message: InboundMessage,
        correlation_id: Optional[UUID] = None,
    ) -> CommandResult:
        """
        Process one inbound message.

        Never raises for bad user input. Unexpected errors are logged
        and turned into a generic failure reply.
        """
        correlation_id = correlation_id or create_correlation_id()
        command = message.command

        log = logger.bind(
            user_id=message.user_id,
            command=command or "<text>",
            correlation_id=str(correlation_id),
        )
        log.debug("message_received")

        try:
            if command is None:
                if message.user_id in self.awaiting_name:
                    return await self.handle_name(message, correlation_id)
                return CommandResult(success=False, message=UNKNOWN_COMMAND_TEXT)

            handler = self._handlers.get(command)
            if handler is None:
                return CommandResult(success=False, message=UNKNOWN_COMMAND_TEXT)

            if (
                command not in self._open_commands
                and not self._ledger.is_registered(message.user_id)
            ):
                return CommandResult(success=False, message=REGISTER_FIRST_TEXT)

            return await handler(message, correlation_id)

        except (LedgerError, InvalidDateFormatError) as e:
            log.info("command_rejected", error_type=type(e).__name__, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_validation_rejected(
                    user_id=message.user_id,
                    command=command or "name",
                    error=e,
                    correlation_id=correlation_id,
                )
            return CommandResult(success=False, message=self._rejection_text(command, e))

        except Exception as e:
            log.exception("command_failed")
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"user_id": message.user_id, "command": command},
                    correlation_id=correlation_id,
                )
            return CommandResult(success=False, message=INTERNAL_ERROR_TEXT)

    # -- registration ------------------------------------------------------

    async def handle_start(self, message: InboundMessage, correlation_id: UUID) -> CommandResult:
        record = self._ledger.get_record(message.user_id)
        if self._ledger.is_registered(message.user_id):
            self.awaiting_name.discard(message.user_id)
            return CommandResult(
                success=True,
                message=f"Welcome back, {record.name}!\n\n{INFO_TEXT}",
                data=record,
            )

        self.awaiting_name.add(message.user_id)
        return CommandResult(success=True, message=ASK_NAME_TEXT)

    async def handle_name(self, message: InboundMessage, correlation_id: UUID) -> CommandResult:
        """Plain text from a user we asked for a name."""
        previous = self._ledger.get_record(message.user_id)

        # Raises InvalidNameError; the user stays in awaiting_name
        record = self._ledger.register(message.user_id, message.text)
        self.awaiting_name.discard(message.user_id)
        await self._store.save(self._ledger)

        if self._audit_logger:
            await self._audit_logger.log_user_registered(
                user_id=record.id,
                name=record.name,
                renamed_from=previous.name if previous and previous.name != record.name else None,
                correlation_id=correlation_id,
            )

        return CommandResult(
            success=True,
            message=f"Thanks, {record.name}! Commands are now available.\n\n{INFO_TEXT}",
            data=record,
        )

    async def handle_info(self, message: InboundMessage, correlation_id: UUID) -> CommandResult:
        return CommandResult(success=True, message=INFO_TEXT)

    # -- mutations ---------------------------------------------------------

    async def handle_stairs(self, message: InboundMessage, correlation_id: UUID) -> CommandResult:
        if not message.args:
            return CommandResult(success=False, message=STAIRS_USAGE_TEXT)

        amount = parse_amount(message.args[0])
        today = self._ledger.today()
        record = self._ledger.add_amount(
            message.user_id,
            message.display_name_hint,
            amount,
            date_key=today,
        )
        await self._store.save(self._ledger)

        if self._audit_logger:
            await self._audit_logger.log_stairs_added(
                user_id=record.id,
                date_key=today,
                amount=amount,
                new_total=record.total,
                correlation_id=correlation_id,
            )

        return CommandResult(
            success=True,
            message=f"Added {amount}. Your total: {record.total}",
            data=record,
        )

    async def handle_update(self, message: InboundMessage, correlation_id: UUID) -> CommandResult:
        if len(message.args) < 2:
            return CommandResult(success=False, message=UPDATE_USAGE_TEXT)

        date_key = dates.parse(message.args[0], self._clock)
        delta = parse_amount(message.args[1], allow_negative=True)
        outcome = self._ledger.adjust_day(message.user_id, date_key, delta)
        await self._store.save(self._ledger)

        if self._audit_logger:
            await self._audit_logger.log_day_adjusted(
                user_id=outcome.user_id,
                date_key=outcome.date_key,
                previous=outcome.previous,
                delta=outcome.delta,
                new_total=outcome.total,
                correlation_id=correlation_id,
            )

        return CommandResult(
            success=True,
            message=(
                f"Updated {dates.format_dm(outcome.date_key)}: "
                f"{outcome.previous} {outcome.delta:+d} = {outcome.value}\n"
                f"Your total: {outcome.total}"
            ),
            data=self._ledger.get_record(message.user_id),
        )

    # -- reports -----------------------------------------------------------

    async def handle_list(self, message: InboundMessage, correlation_id: UUID) -> CommandResult:
        record = self._ledger.get_record(message.user_id)
        return CommandResult(
            success=True,
            message=render_day_list(record),
            data=record,
            monospace=bool(record.days),
        )

    async def handle_stat(self, message: InboundMessage, correlation_id: UUID) -> CommandResult:
        users = list(self._ledger.list_users())
        rows = leaderboard(users)

        days, title = self._chart_window(message.args)
        by_id = {u.id: u for u in users}
        series = build_daily_series(
            [by_id[r.user_id] for r in rows],
            days,
            title,
        )

        return CommandResult(
            success=True,
            message=render_leaderboard(rows),
            data=series,
            monospace=bool(rows),
        )

    def _chart_window(self, args: list[str]) -> tuple[dates.DateRange, str]:
        """
        Pick the chart's day range.

        Explicit "start end" arguments win, then the configured fixed
        range, then the last N days ending today. A pair only counts
        when both halves are valid YYYY-MM-DD keys.
        """
        start, end = (args + [None, None])[:2]
        if not (dates.is_valid_key(start) and dates.is_valid_key(end)):
            start, end = self._chart.fixed_range or (None, None)

        if start and end:
            days = dates.range_inclusive(start, end)
            return days, range_title(days)

        return dates.last_n_days(self._chart.days, self._clock), last_days_title(self._chart.days)

    def _rejection_text(self, command: Optional[str], error: Exception) -> str:
        """User-facing text for a rejected command."""
        if isinstance(error, InvalidNameError):
            return "Name must be 2 to 40 characters. Please send it again."
        if isinstance(error, InvalidDateFormatError):
            return "Invalid date. Use YYYY-MM-DD or DD.MM"
        if isinstance(error, InvalidAmountError):
            if command == "stairs":
                return "Please send a positive whole number. Example: /stairs 80"
            return "Amount must be a whole number (negative allowed). Example: /update 27.10 -2"
        if isinstance(error, InsufficientDayBalanceError):
            day = dates.format_dm(error.date_key)
            if error.current == 0:
                return f"Nothing recorded on {day}, nothing to subtract."
            return f"Cannot subtract {error.requested} from {day}: only {error.current} recorded."
        if isinstance(error, UserNotFoundError):
            return "You have no entries yet. Add stairs with /stairs first."
        return str(error)


async def create_app_components(
    storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    clock: Optional[Clock] = None,
) -> StairsFlow:
    """
    Factory function to create and load all application components.

    Args:
        storage: Snapshot backend. Defaults to the JSON file from settings.
        audit_storage: Audit sink. Defaults to the JSONL file from settings,
                       or none when no audit file is configured.
        clock: Time source for the whole bot (tests pass a fixed one).

    Returns:
        A StairsFlow with its ledger already loaded
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    storage_settings = settings.storage
    if storage is None:
        storage = JsonFileLedgerStorage(
            storage_settings.data_file,
            retry_attempts=storage_settings.write_retry_attempts,
        )
    if audit_storage is None and storage_settings.audit_file:
        audit_storage = JsonlAuditStorage(storage_settings.audit_file)

    audit_logger = AuditLogger(audit_storage)
    store = LedgerStore(
        storage,
        audit_logger=audit_logger,
        clock=clock,
        default_name=settings.app.default_user_name,
    )
    ledger = await store.load()

    return StairsFlow(
        ledger=ledger,
        store=store,
        audit_logger=audit_logger,
        chart_settings=settings.chart,
        clock=clock,
    )
