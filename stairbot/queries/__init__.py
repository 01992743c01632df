"""Report building package."""

from stairbot.queries.reports import (
    EMPTY_DAY_LIST,
    EMPTY_LEADERBOARD,
    PALETTE,
    build_daily_series,
    color_for,
    last_days_title,
    leaderboard,
    range_title,
    render_day_list,
    render_leaderboard,
)

__all__ = [
    "EMPTY_DAY_LIST",
    "EMPTY_LEADERBOARD",
    "PALETTE",
    "build_daily_series",
    "color_for",
    "last_days_title",
    "leaderboard",
    "range_title",
    "render_day_list",
    "render_leaderboard",
]
