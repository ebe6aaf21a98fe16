"""Tests for the SLA sweep and its scheduler."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from src.models.complaint import Complaint, StatusHistoryEntry, format_complaint_id
from src.models.enums import ComplaintCategory, ComplaintStatus, NotificationType, UserRole
from src.models.user import User
from src.services.complaint_store import InMemoryComplaintStore
from src.services.notifications import InMemoryNotificationGateway
from src.services.sla_monitor import (
    ALERT_KIND_APPROACHING,
    ALERT_KIND_BREACHED,
    APPROACHING_MARKER,
    SLAMonitor,
    SLAMonitorScheduler,
    SLASweepResult,
)
from src.services.user_directory import InMemoryUserDirectory

# 13:30 in Asia/Kolkata
T0 = datetime(2026, 4, 1, 8, 0, tzinfo=UTC)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


class _FlakyGateway(InMemoryNotificationGateway):
    """Fails every enqueue addressed to one recipient."""

    def __init__(self, directory, clock, broken_recipient: str) -> None:
        super().__init__(directory, clock=clock)
        self.broken_recipient = broken_recipient

    async def enqueue(self, recipient_id, *args, **kwargs):  # type: ignore[override]
        if recipient_id == self.broken_recipient:
            raise RuntimeError("inbox unavailable")
        return await super().enqueue(recipient_id, *args, **kwargs)


def _complaint(
    seq: int,
    *,
    deadline: datetime,
    assigned_to: str | None = "officer-1",
    status: ComplaintStatus = ComplaintStatus.IN_PROGRESS,
) -> Complaint:
    return Complaint(
        complaint_id=format_complaint_id(seq, 2026),
        title=f"Power outage block {seq}",
        description="No electricity in the whole block since noon",
        category=ComplaintCategory.ELECTRICITY,
        status=status,
        created_by="citizen-1",
        assigned_to=assigned_to,
        assigned_at=T0 if assigned_to else None,
        created_at=T0,
        updated_at=T0,
        sla_deadline=deadline,
        status_history=[StatusHistoryEntry(status=status, changed_by="admin-1", changed_at=T0)],
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory([
        User(user_id="officer-1", name="Suresh", role=UserRole.OFFICER),
        User(user_id="officer-2", name="Anita", role=UserRole.OFFICER),
        User(user_id="admin-1", name="Ramesh", role=UserRole.ADMIN),
    ])


@pytest.fixture
def store() -> InMemoryComplaintStore:
    return InMemoryComplaintStore()


@pytest.fixture
def notifications(directory: InMemoryUserDirectory, clock: FakeClock) -> InMemoryNotificationGateway:
    return InMemoryNotificationGateway(directory, clock=clock)


@pytest.fixture
def monitor(
    store: InMemoryComplaintStore,
    notifications: InMemoryNotificationGateway,
    clock: FakeClock,
) -> SLAMonitor:
    return SLAMonitor(store, notifications, clock=clock)


async def _run_at(monitor: SLAMonitor, clock: FakeClock, **offset: float) -> SLASweepResult:
    clock.now = T0 + timedelta(**offset)
    return await monitor.run()


class TestApproaching:
    async def test_one_alert_inside_window(
        self,
        monitor: SLAMonitor,
        store: InMemoryComplaintStore,
        notifications: InMemoryNotificationGateway,
        clock: FakeClock,
    ) -> None:
        await store.insert(_complaint(1, deadline=T0 + timedelta(hours=12)))

        first = await _run_at(monitor, clock, hours=11.5)
        assert first.warnings_sent == 1
        [alert] = await notifications.list_for_recipient("officer-1")
        assert alert.type == NotificationType.ALERT
        assert alert.title == "SLA Deadline Approaching!"
        assert alert.message.startswith(APPROACHING_MARKER)
        assert "only 30 minutes remaining" in alert.message
        assert alert.metadata["alert_kind"] == ALERT_KIND_APPROACHING
        assert alert.metadata["remaining_minutes"] == 30

        second = await _run_at(monitor, clock, hours=11.9)
        assert second.warnings_sent == 0
        assert second.skipped == 1
        assert len(await notifications.list_for_recipient("officer-1")) == 1

    async def test_outside_window_is_ignored(
        self,
        monitor: SLAMonitor,
        store: InMemoryComplaintStore,
        clock: FakeClock,
    ) -> None:
        await store.insert(_complaint(1, deadline=T0 + timedelta(hours=12)))
        result = await _run_at(monitor, clock, hours=10)
        assert (result.warnings_sent, result.breaches_sent, result.skipped) == (0, 0, 0)

    async def test_deadline_at_window_edge_is_included(
        self,
        monitor: SLAMonitor,
        store: InMemoryComplaintStore,
        clock: FakeClock,
    ) -> None:
        await store.insert(_complaint(1, deadline=T0 + timedelta(hours=12)))
        result = await _run_at(monitor, clock, hours=11)
        assert result.warnings_sent == 1

    async def test_repeats_after_dedup_window(
        self,
        store: InMemoryComplaintStore,
        notifications: InMemoryNotificationGateway,
        clock: FakeClock,
    ) -> None:
        monitor = SLAMonitor(store, notifications, clock=clock, warning_window_minutes=240)
        await store.insert(_complaint(1, deadline=T0 + timedelta(hours=4)))

        assert (await _run_at(monitor, clock, hours=0)).warnings_sent == 1
        assert (await _run_at(monitor, clock, hours=1)).warnings_sent == 0
        assert (await _run_at(monitor, clock, hours=2, minutes=1)).warnings_sent == 1

    async def test_legacy_alert_without_metadata_dedups(
        self,
        monitor: SLAMonitor,
        store: InMemoryComplaintStore,
        notifications: InMemoryNotificationGateway,
        clock: FakeClock,
    ) -> None:
        await store.insert(_complaint(1, deadline=T0 + timedelta(hours=12)))
        clock.now = T0 + timedelta(hours=11, minutes=20)
        await notifications.enqueue(
            "officer-1",
            NotificationType.ALERT,
            "SLA Deadline Approaching!",
            f"{APPROACHING_MARKER}: complaint CMP-2026-000001 has 40 minutes remaining",
            complaint_ref="CMP-2026-000001",
        )
        result = await _run_at(monitor, clock, hours=11.5)
        assert result.warnings_sent == 0

    @pytest.mark.parametrize("status", [ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED, ComplaintStatus.REJECTED])
    async def test_settled_complaints_skipped(
        self,
        monitor: SLAMonitor,
        store: InMemoryComplaintStore,
        clock: FakeClock,
        status: ComplaintStatus,
    ) -> None:
        await store.insert(_complaint(1, deadline=T0 + timedelta(hours=12), status=status))
        await store.insert(_complaint(2, deadline=T0 + timedelta(hours=1), status=status))
        result = await _run_at(monitor, clock, hours=11.5)
        assert (result.warnings_sent, result.breaches_sent) == (0, 0)

    async def test_unassigned_complaints_skipped(
        self,
        monitor: SLAMonitor,
        store: InMemoryComplaintStore,
        clock: FakeClock,
    ) -> None:
        await store.insert(_complaint(1, deadline=T0 + timedelta(hours=12), assigned_to=None, status=ComplaintStatus.NEW))
        result = await _run_at(monitor, clock, hours=11.5)
        assert result.warnings_sent == 0


class TestBreached:
    async def test_once_per_local_day(
        self,
        monitor: SLAMonitor,
        store: InMemoryComplaintStore,
        notifications: InMemoryNotificationGateway,
        clock: FakeClock,
    ) -> None:
        await store.insert(_complaint(1, deadline=T0 - timedelta(hours=5)))

        first = await _run_at(monitor, clock, hours=0)
        assert first.breaches_sent == 1
        [alert] = await notifications.list_for_recipient("officer-1")
        assert alert.title == "SLA Deadline Breached!"
        assert "breached by 5 hours" in alert.message
        assert alert.metadata["alert_kind"] == ALERT_KIND_BREACHED

        # 18:00 UTC is still 23:30 on the same day in Kolkata.
        same_day = await _run_at(monitor, clock, hours=10)
        assert same_day.breaches_sent == 0

        # 19:00 UTC is 00:30 the next day in Kolkata.
        next_day = await _run_at(monitor, clock, hours=11)
        assert next_day.breaches_sent == 1
        assert len(await notifications.list_for_recipient("officer-1")) == 2

    def test_start_of_day_uses_configured_zone(self, monitor: SLAMonitor) -> None:
        start = monitor.start_of_day(datetime(2026, 4, 1, 19, 0, tzinfo=UTC))
        assert start == datetime(2026, 4, 1, 18, 30, tzinfo=UTC)


class TestIsolation:
    async def test_one_failure_does_not_stop_the_batch(
        self,
        store: InMemoryComplaintStore,
        directory: InMemoryUserDirectory,
        clock: FakeClock,
    ) -> None:
        gateway = _FlakyGateway(directory, clock, broken_recipient="officer-2")
        monitor = SLAMonitor(store, gateway, clock=clock)
        await store.insert(_complaint(1, deadline=T0 - timedelta(hours=1), assigned_to="officer-2"))
        await store.insert(_complaint(2, deadline=T0 - timedelta(hours=2), assigned_to="officer-1"))

        result = await monitor.run()

        assert result.failures == 1
        assert result.breaches_sent == 1
        assert len(await gateway.list_for_recipient("officer-1")) == 1

    async def test_explicit_now_overrides_clock(
        self,
        monitor: SLAMonitor,
        store: InMemoryComplaintStore,
    ) -> None:
        await store.insert(_complaint(1, deadline=T0 + timedelta(hours=12)))
        result = await monitor.run(now=T0 + timedelta(hours=11, minutes=45))
        assert result.started_at == T0 + timedelta(hours=11, minutes=45)
        assert result.warnings_sent == 1


class TestScheduler:
    @staticmethod
    def _settings(enabled: bool = True) -> SimpleNamespace:
        return SimpleNamespace(enable_sla_monitor=enabled, sla_check_interval_minutes=15)

    async def test_run_now_records_result(self, monitor: SLAMonitor, clock: FakeClock) -> None:
        scheduler = SLAMonitorScheduler(monitor, self._settings())
        result = await scheduler.run_now()
        assert result is not None
        assert scheduler.last_run == T0
        assert scheduler.last_result is result

    async def test_run_now_swallows_failures(self) -> None:
        monitor = AsyncMock()
        monitor.run.side_effect = RuntimeError("store offline")
        scheduler = SLAMonitorScheduler(monitor, self._settings())
        assert await scheduler.run_now() is None
        assert scheduler.last_result is None

    async def test_disabled_does_not_start(self, monitor: SLAMonitor) -> None:
        scheduler = SLAMonitorScheduler(monitor, self._settings(enabled=False))
        scheduler.start()
        assert scheduler.is_running is False
        await scheduler.stop()

    async def test_background_loop_runs_and_stops(self) -> None:
        monitor = AsyncMock()
        monitor.run.return_value = SLASweepResult(started_at=T0)
        scheduler = SLAMonitorScheduler(monitor, self._settings())

        scheduler.start()
        for _ in range(3):
            await asyncio.sleep(0)
        assert scheduler.is_running is True
        assert monitor.run.await_count == 1

        await scheduler.stop()
        assert scheduler.is_running is False
