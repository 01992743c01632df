"""
Report Builders

DESIGN DECISION: Reports are DETERMINISTIC views over ledger records.
They never mutate anything and never read the clock themselves;
the caller passes the day range.

Text tables are fixed-width and meant to be shown in monospace.
Chart data is handed to an external renderer as a DailySeries.
"""

from typing import Iterable

from stairbot.dates import DateRange, format_dm
from stairbot.models.ledger import UserRecord
from stairbot.models.reports import DailySeries, LeaderboardRow, UserSeries


# Line colours; color_for picks one per user id
PALETTE = [
    "#4e79a7",
    "#f28e2b",
    "#e15759",
    "#76b7b2",
    "#59a14f",
    "#edc948",
    "#b07aa1",
    "#ff9da7",
    "#9c755f",
    "#bab0ab",
]

EMPTY_LEADERBOARD = "No data yet. Add stairs with /stairs <amount>."
EMPTY_DAY_LIST = "No daily entries yet. Add stairs with /stairs."


def color_for(user_id: str) -> str:
    """Stable palette colour for a user id (31-based rolling hash)."""
    h = 0
    for ch in user_id:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return PALETTE[h % len(PALETTE)]


def leaderboard(users: Iterable[UserRecord]) -> list[LeaderboardRow]:
    """Rows sorted by total, highest first (ties by name, then id)."""
    rows = [
        LeaderboardRow(user_id=u.id, name=u.name, total=u.total)
        for u in users
    ]
    rows.sort(key=lambda r: (-r.total, r.name, r.user_id))
    return rows


def render_leaderboard(rows: list[LeaderboardRow]) -> str:
    """
    Overall totals table with a grand total line.

    Example:
        Leaderboard (all time)
        ──────────────────
        Name  | Stairs
        ──────-+-──────
        Vadym | 200
        ...
    """
    if not rows:
        return EMPTY_LEADERBOARD

    name_width = max(4, *(len(r.name) for r in rows))
    total_width = max(6, *(len(str(r.total)) for r in rows))
    grand_total = sum(r.total for r in rows)
    total_width = max(total_width, len(str(grand_total)))

    lines = [
        "Leaderboard (all time)",
        "─" * (name_width + total_width + 7),
        f"{'Name'.ljust(name_width)} | {'Stairs'.ljust(total_width)}",
        f"{'─' * name_width}-+-{'─' * total_width}",
    ]
    for r in rows:
        lines.append(f"{r.name.ljust(name_width)} | {str(r.total).ljust(total_width)}")
    lines.append(f"{'-' * name_width}-+-{'-' * total_width}")
    lines.append(f"{'Total'.ljust(name_width)} | {str(grand_total).ljust(total_width)}")
    return "\n".join(lines)


def render_day_list(record: UserRecord) -> str:
    """One user's days in chronological order, with their sum."""
    entries = record.sorted_days()
    if not entries:
        return EMPTY_DAY_LIST

    lines = [
        f"Daily log: {record.name or 'you'}",
        "───────────────",
        "Day    | Stairs",
        "───────+───────",
    ]
    for key, value in entries:
        lines.append(f"{format_dm(key).ljust(6)} | {str(value).rjust(6)}")
    lines.append("───────+───────")
    lines.append(f"{'Total'.ljust(6)} | {str(sum(v for _, v in entries)).rjust(6)}")
    return "\n".join(lines)


def build_daily_series(
    users: Iterable[UserRecord],
    days: DateRange,
    title: str,
) -> DailySeries:
    """
    Per-user values for every day in ``days``.

    Days a user has no entry for are 0, so every series lines up
    with the labels.
    """
    labels = list(days)
    series = [
        UserSeries(
            user_id=u.id,
            name=u.name,
            color=color_for(u.id),
            values=[u.days.get(key, 0) for key in labels],
        )
        for u in users
    ]
    return DailySeries(title=title, labels=labels, series=series)


def range_title(days: DateRange) -> str:
    """Caption for an explicit date range."""
    labels = list(days)
    if not labels:
        return "Daily progress (no days)"
    return f"Daily progress ({format_dm(labels[0])}-{format_dm(labels[-1])})"


def last_days_title(count: int) -> str:
    return f"Daily progress (last {count} days)"
