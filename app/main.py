"""
Streamlit Dashboard for the Stairs Bot

Read-only view of the ledger the bot writes:
the leaderboard, each user's daily log, and the daily chart.

DESIGN PRINCIPLES:
1. Never writes user data (the bot owns every mutation)
2. Same snapshot, same settings, same report builders as the bot
3. Clear messages when the snapshot is missing or unreadable

Run with:
    streamlit run app/main.py
"""

import asyncio
from datetime import date

import streamlit as st

from stairbot import dates
from stairbot.config import get_settings, validate_all_settings
from stairbot.ledger import Ledger
from stairbot.models.reports import DailySeries
from stairbot.queries import (
    build_daily_series,
    last_days_title,
    leaderboard,
    range_title,
    render_day_list,
)
from stairbot.services import JsonFileLedgerStorage, read_ledger


# Page configuration
st.set_page_config(
    page_title="Stairs Bot",
    page_icon="🪜",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _load_ledger() -> Ledger:
    settings = get_settings()
    storage = JsonFileLedgerStorage(
        settings.storage.data_file,
        retry_attempts=settings.storage.write_retry_attempts,
    )
    # Read-only: the bot's LedgerStore is the snapshot's only writer
    return await read_ledger(storage, default_name=settings.app.default_user_name)


def load_ledger() -> Ledger:
    """Load a fresh copy of the ledger for this page run."""
    return run_async(_load_ledger())


def chart_frame(series: DailySeries) -> tuple[dict, list[str], list[str]]:
    """Column data for st.line_chart: (data, y columns, colours)."""
    data = {"day": list(series.labels)}
    columns, colors = [], []
    for s in series.series:
        column = s.name
        if column in data:
            column = f"{s.name} ({s.user_id})"
        data[column] = s.values
        columns.append(column)
        colors.append(s.color)
    return data, columns, colors


def main():
    """Main application entry point."""
    st.sidebar.title("🪜 Stairs Bot")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🏆 Leaderboard", "📋 Daily Log", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Bot commands:**
        - `/stairs 120` adds stairs for today
        - `/update 27.10 -2` corrects a day
        - `/list` shows your days
        - `/stat` shows this leaderboard
        """
    )

    if page == "⚙️ Settings":
        render_settings_page()
        return

    try:
        ledger = load_ledger()
    except Exception as e:
        st.error(f"Could not load the ledger: {e}")
        return

    if page == "🏆 Leaderboard":
        render_leaderboard_page(ledger)
    elif page == "📋 Daily Log":
        render_daily_log_page(ledger)


def render_leaderboard_page(ledger: Ledger):
    """Render totals and the daily chart."""
    st.title("🏆 Leaderboard")

    users = list(ledger.list_users())
    rows = leaderboard(users)
    if not rows:
        st.info("No stairs logged yet. Send /stairs <amount> to the bot to start.")
        return

    col1, col2 = st.columns(2)
    with col1:
        st.metric("Climbers", len(rows))
    with col2:
        st.metric("Stairs in total", sum(r.total for r in rows))

    st.dataframe(
        [{"Name": r.name, "Stairs": r.total} for r in rows],
        use_container_width=True,
        hide_index=True,
    )

    st.markdown("---")

    chart = get_settings().chart
    default_days = dates.last_n_days(chart.days)
    if chart.fixed_range:
        default_days = dates.range_inclusive(*chart.fixed_range)

    picked = st.date_input(
        "Chart range",
        value=(default_days.start, default_days.end),
        help="Defaults to the configured chart window",
    )

    if isinstance(picked, (tuple, list)) and len(picked) == 2:
        start, end = picked
        days = dates.range_inclusive(start.isoformat(), end.isoformat())
        title = range_title(days)
    else:
        days = dates.last_n_days(chart.days)
        title = last_days_title(chart.days)

    by_id = {u.id: u for u in users}
    series = build_daily_series([by_id[r.user_id] for r in rows], days, title)

    st.subheader(series.title)
    if series.day_count == 0:
        st.warning("The chosen range has no days.")
        return

    data, columns, colors = chart_frame(series)
    st.line_chart(data, x="day", y=columns, color=colors)


def render_daily_log_page(ledger: Ledger):
    """Render one user's day-by-day entries."""
    st.title("📋 Daily Log")

    users = sorted(ledger.list_users(), key=lambda u: u.name.lower())
    if not users:
        st.info("Nobody has registered yet.")
        return

    user = st.selectbox(
        "Climber",
        options=users,
        format_func=lambda u: f"{u.name} ({u.total})",
    )

    st.code(render_day_list(user), language=None)

    if user.updated_at:
        st.caption(f"Last change: {user.updated_at:%Y-%m-%d %H:%M} UTC")
    st.caption(f"Today (UTC): {date.fromisoformat(ledger.today()):%d.%m.%Y}")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")

    status = validate_all_settings()

    sections = [
        ("Storage (snapshot file)", "storage"),
        ("Chart window", "chart"),
        ("Application", "app"),
    ]

    for name, key in sections:
        if status.get(key, False):
            st.success(f"✅ {name} - OK")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if status.get("storage"):
        storage = get_settings().storage
        st.markdown(f"Snapshot file: `{storage.data_file}`")
        if storage.audit_file:
            st.markdown(f"Audit log: `{storage.audit_file}`")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "Settings come from environment variables or a `.env` file: "
        "`LEDGER_DATA_FILE`, `LEDGER_AUDIT_FILE`, `LEDGER_WRITE_RETRY_ATTEMPTS`, "
        "`CHART_DAYS`, `CHART_START`, `CHART_END`, `LOG_LEVEL`."
    )


if __name__ == "__main__":
    main()
