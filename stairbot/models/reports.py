"""
Report Models

Data handed to display collaborators (chat replies, charts).
Nothing here is persisted.
"""

from pydantic import BaseModel, Field


class LeaderboardRow(BaseModel):
    """One line of the overall leaderboard."""

    user_id: str
    name: str
    total: int = Field(ge=0)


class UserSeries(BaseModel):
    """Daily values for one user, aligned with ``DailySeries.labels``."""

    user_id: str
    name: str
    color: str = Field(
        ...,
        pattern=r"^#[0-9a-f]{6}$",
        description="Stable line colour derived from the user id"
    )
    values: list[int] = Field(default_factory=list)


class DailySeries(BaseModel):
    """
    Input for the chart renderer.

    ``labels`` are day keys; every entry in ``series`` has exactly one
    value per label (days without an entry are 0).
    """

    title: str
    labels: list[str] = Field(default_factory=list)
    series: list[UserSeries] = Field(default_factory=list)

    @property
    def day_count(self) -> int:
        return len(self.labels)
