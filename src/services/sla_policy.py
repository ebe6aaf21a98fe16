"""Service-level agreement policy for complaint resolution.

Each complaint category carries a resolution budget in hours.  The
deadline is fixed when the complaint is created and never recomputed;
this module only derives and classifies it.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Final
from zoneinfo import ZoneInfo

import structlog

from src.models.enums import ComplaintCategory, ComplaintStatus

logger = structlog.get_logger(__name__)

DEFAULT_BUDGET_HOURS: Final[int] = 72

MIN_BUDGET_HOURS: Final[int] = 1
MAX_BUDGET_HOURS: Final[int] = 720  # 30 days

DEFAULT_SLA_HOURS: Final[Mapping[str, int]] = MappingProxyType({
    ComplaintCategory.ROAD_INFRASTRUCTURE: 72,
    ComplaintCategory.WATER_SUPPLY: 24,
    ComplaintCategory.ELECTRICITY: 12,
    ComplaintCategory.GARBAGE_COLLECTION: 48,
    ComplaintCategory.STREET_LIGHTING: 24,
    ComplaintCategory.DRAINAGE: 48,
    ComplaintCategory.PUBLIC_PROPERTY_DAMAGE: 72,
    ComplaintCategory.NOISE_POLLUTION: 24,
    ComplaintCategory.AIR_POLLUTION: 48,
    ComplaintCategory.OTHER: 72,
})

# A complaint in one of these statuses is never counted as breached.
_SETTLED_STATUSES: Final[frozenset[ComplaintStatus]] = frozenset({
    ComplaintStatus.RESOLVED,
    ComplaintStatus.CLOSED,
})


def _validate_hours(category: str, hours: int) -> int:
    if not MIN_BUDGET_HOURS <= hours <= MAX_BUDGET_HOURS:
        raise ValueError(
            f"SLA budget for {category!r} must be between "
            f"{MIN_BUDGET_HOURS} and {MAX_BUDGET_HOURS} hours, got {hours}"
        )
    return hours


class SLAPolicy:
    """Per-category resolution budgets plus deadline arithmetic.

    Parameters
    ----------
    overrides:
        Optional ``{category: hours}`` entries replacing the defaults.
        Unknown category names are rejected.
    default_hours:
        Budget used for categories missing from the table.
    """

    __slots__ = ("_budgets", "_default_hours")

    def __init__(
        self,
        overrides: Mapping[str, int] | None = None,
        *,
        default_hours: int = DEFAULT_BUDGET_HOURS,
    ) -> None:
        self._default_hours = _validate_hours("default", default_hours)
        budgets = {str(category): hours for category, hours in DEFAULT_SLA_HOURS.items()}
        for name, hours in (overrides or {}).items():
            try:
                category = ComplaintCategory(name)
            except ValueError:
                raise ValueError(f"Unknown complaint category in SLA overrides: {name!r}") from None
            budgets[str(category)] = _validate_hours(name, hours)
        self._budgets: Mapping[str, int] = MappingProxyType(budgets)

        if overrides:
            logger.info("sla_policy.overrides_applied", overrides=dict(overrides))

    # -- budgets -------------------------------------------------------------

    @property
    def default_hours(self) -> int:
        return self._default_hours

    def budgets(self) -> dict[str, int]:
        """Effective ``{category: hours}`` table."""
        return dict(self._budgets)

    def budget_hours(self, category: ComplaintCategory | str) -> int:
        """Return the budget for *category*, falling back to the default."""
        return self._budgets.get(str(category), self._default_hours)

    # -- deadline arithmetic ---------------------------------------------------

    def compute_deadline(self, category: ComplaintCategory | str, created_at: datetime) -> datetime:
        return created_at + timedelta(hours=self.budget_hours(category))

    @staticmethod
    def is_breached(deadline: datetime, status: ComplaintStatus, now: datetime) -> bool:
        """Overdue and not yet resolved or closed."""
        return now > deadline and status not in _SETTLED_STATUSES

    @staticmethod
    def remaining(deadline: datetime, now: datetime) -> timedelta:
        """Signed time left; negative once the deadline has passed."""
        return deadline - now

    @staticmethod
    def is_met(resolved_at: datetime, deadline: datetime) -> bool:
        return resolved_at <= deadline


def format_local(moment: datetime, timezone_name: str) -> str:
    """Render *moment* for humans in *timezone_name*, e.g. ``17 Oct 2026, 03:30 PM IST``."""
    return moment.astimezone(ZoneInfo(timezone_name)).strftime("%d %b %Y, %I:%M %p %Z")
