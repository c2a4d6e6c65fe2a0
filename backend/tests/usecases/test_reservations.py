import datetime as dt
from typing import Any, Mapping, Optional

import pytest
from campus_booking.domain.errors import (
    InvalidReasonError,
    InvalidTimeRangeError,
    InvalidTransitionError,
    LocalCacheError,
    MissingDescriptionError,
    NotFoundError,
    RemoteUnavailableError,
    SpaceUnavailableError,
    ValidationError,
)
from campus_booking.domain.repositories import ReservationFilter
from campus_booking.models import ReservationStatus
from campus_booking.schemas import ReservationCreate, ReservationRead, SpaceRead
from campus_booking.usecases import reservations as uc

DAY = dt.date(2024, 3, 4)


class FakeRemote:
    def __init__(self) -> None:
        self.spaces: dict[str, SpaceRead] = {}
        self.reservations: dict[str, ReservationRead] = {}
        self.fail = False
        self.calls: list[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.fail:
            raise RemoteUnavailableError(op)

    async def get_space(self, space_id: str) -> Optional[SpaceRead]:
        self._check("get_space")
        return self.spaces.get(space_id)

    async def get_reservation(self, reservation_id: str) -> Optional[ReservationRead]:
        self._check("get_reservation")
        return self.reservations.get(reservation_id)

    async def create_reservation(self, record: ReservationRead) -> ReservationRead:
        self._check("create_reservation")
        self.reservations[record.id] = record
        return record

    async def update_reservation(
        self,
        reservation_id: str,
        patch: Mapping[str, Any],
        *,
        expected_status: Optional[ReservationStatus] = None,
    ) -> Optional[ReservationRead]:
        self._check("update_reservation")
        current = self.reservations.get(reservation_id)
        if current is None:
            return None
        if expected_status is not None and current.status != expected_status:
            raise InvalidTransitionError(current.status.value)
        updated = current.model_copy(update=dict(patch))
        self.reservations[reservation_id] = updated
        return updated

    async def list_reservations(self, criteria: ReservationFilter) -> list[ReservationRead]:
        self._check("list_reservations")
        return [
            r
            for r in self.reservations.values()
            if (criteria.user_id is None or r.user_id == criteria.user_id)
            and (criteria.status_in is None or r.status in criteria.status_in)
            and (criteria.ids is None or r.id in criteria.ids)
        ]


class FakeCache:
    def __init__(self) -> None:
        self.spaces: dict[str, SpaceRead] = {}
        self.reservations: dict[str, ReservationRead] = {}
        self.fail_writes = False

    async def get_space(self, space_id: str) -> Optional[SpaceRead]:
        return self.spaces.get(space_id)

    async def upsert_space(self, space: SpaceRead) -> None:
        if self.fail_writes:
            raise LocalCacheError("upsert_space")
        self.spaces[space.id] = space

    async def upsert_reservation(self, reservation: ReservationRead) -> None:
        await self.upsert_reservations([reservation])

    async def upsert_reservations(self, reservations: list[ReservationRead]) -> None:
        if self.fail_writes:
            raise LocalCacheError("upsert_reservations")
        for reservation in reservations:
            self.reservations[reservation.id] = reservation

    async def list_reservations(self, criteria: ReservationFilter) -> list[ReservationRead]:
        return [
            r
            for r in self.reservations.values()
            if criteria.status_in is None or r.status in criteria.status_in
        ]


@pytest.fixture
def remote(make_space) -> FakeRemote:
    fake = FakeRemote()
    space = make_space()
    fake.spaces[space.id] = space
    return fake


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def requester(make_user):
    return make_user()


def _request(**overrides: Any) -> ReservationCreate:
    values: dict[str, Any] = {
        "space_id": "court-1",
        "date": DAY,
        "start_time": "10:00",
        "end_time": "11:00",
        "description": "Entreno de fútbol",
    }
    values.update(overrides)
    return ReservationCreate(**values)


@pytest.mark.asyncio
async def test_create_writes_pending_reservation_remote_then_cache(remote, cache, requester) -> None:
    created = await uc.create_reservation(remote, cache, request=_request(), requester=requester)

    assert created.status == ReservationStatus.PENDING
    assert created.space_name == "Cancha de fútbol"
    assert created.user_id == requester.id
    assert created.user_email == requester.email
    assert remote.reservations[created.id] == created
    assert cache.reservations[created.id] == created
    assert remote.calls == ["get_space", "create_reservation"]


@pytest.mark.asyncio
async def test_create_rejects_inverted_times_before_any_io(remote, cache, requester) -> None:
    with pytest.raises(InvalidTimeRangeError):
        await uc.create_reservation(
            remote, cache, request=_request(start_time="14:00", end_time="13:00"), requester=requester
        )
    assert remote.calls == []


@pytest.mark.asyncio
async def test_create_rejects_blank_description(remote, cache, requester) -> None:
    with pytest.raises(MissingDescriptionError):
        await uc.create_reservation(remote, cache, request=_request(description="  "), requester=requester)
    with pytest.raises(ValidationError):
        await uc.create_reservation(remote, cache, request=_request(description=""), requester=requester)


@pytest.mark.asyncio
async def test_create_fails_for_unknown_space(remote, cache, requester) -> None:
    with pytest.raises(NotFoundError):
        await uc.create_reservation(remote, cache, request=_request(space_id="nope"), requester=requester)


@pytest.mark.asyncio
async def test_create_fails_for_inactive_space(remote, cache, requester, make_space) -> None:
    closed = make_space("garden-9", is_active=False)
    remote.spaces[closed.id] = closed
    with pytest.raises(SpaceUnavailableError):
        await uc.create_reservation(remote, cache, request=_request(space_id=closed.id), requester=requester)


@pytest.mark.asyncio
async def test_create_allows_overlapping_pending_requests(remote, cache, requester) -> None:
    first = await uc.create_reservation(remote, cache, request=_request(), requester=requester)
    second = await uc.create_reservation(remote, cache, request=_request(), requester=requester)
    assert first.id != second.id
    assert {r.status for r in remote.reservations.values()} == {ReservationStatus.PENDING}


@pytest.mark.asyncio
async def test_create_fails_without_local_mutation_when_remote_down(remote, cache, requester, make_space) -> None:
    cache.spaces["court-1"] = make_space()
    remote.fail = True
    with pytest.raises(RemoteUnavailableError):
        await uc.create_reservation(remote, cache, request=_request(), requester=requester)
    assert cache.reservations == {}


@pytest.mark.asyncio
async def test_create_succeeds_when_cache_mirror_fails(remote, cache, requester) -> None:
    cache.fail_writes = True
    created = await uc.create_reservation(remote, cache, request=_request(), requester=requester)
    assert created.id in remote.reservations
    assert cache.reservations == {}


@pytest.mark.asyncio
async def test_approve_records_approver(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1")

    updated, status_from = await uc.approve_reservation(remote, cache, reservation_id="r1", approver_id="admin42")

    assert status_from == ReservationStatus.PENDING
    assert updated.status == ReservationStatus.APPROVED
    assert updated.approved_by == "admin42"
    assert remote.reservations["r1"].status == ReservationStatus.APPROVED
    assert cache.reservations["r1"] == updated


@pytest.mark.asyncio
async def test_reapproval_is_a_noop(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1", status=ReservationStatus.APPROVED, approved_by="admin1")

    updated, status_from = await uc.approve_reservation(remote, cache, reservation_id="r1", approver_id="admin2")

    assert status_from == ReservationStatus.APPROVED
    assert updated.approved_by == "admin1"
    assert "update_reservation" not in remote.calls


@pytest.mark.asyncio
async def test_approve_missing_reservation(remote, cache) -> None:
    with pytest.raises(NotFoundError):
        await uc.approve_reservation(remote, cache, reservation_id="ghost", approver_id="admin42")


@pytest.mark.asyncio
async def test_approve_rejected_reservation_is_refused(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation(
        "r1", status=ReservationStatus.REJECTED, rejection_reason="Mantenimiento"
    )
    with pytest.raises(InvalidTransitionError):
        await uc.approve_reservation(remote, cache, reservation_id="r1", approver_id="admin42")


@pytest.mark.asyncio
async def test_approve_propagates_remote_failure_without_cache_write(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1")
    remote.fail = True
    with pytest.raises(RemoteUnavailableError):
        await uc.approve_reservation(remote, cache, reservation_id="r1", approver_id="admin42")
    assert cache.reservations == {}


@pytest.mark.asyncio
async def test_reject_records_reason(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1")

    updated, _ = await uc.reject_reservation(
        remote, cache, reservation_id="r1", reason="Espacio requiere mantenimiento"
    )

    assert updated.status == ReservationStatus.REJECTED
    assert updated.rejection_reason == "Espacio requiere mantenimiento"
    assert cache.reservations["r1"].rejection_reason == "Espacio requiere mantenimiento"


@pytest.mark.asyncio
async def test_reject_requires_reason(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1")
    with pytest.raises(InvalidReasonError):
        await uc.reject_reservation(remote, cache, reservation_id="r1", reason="   ")
    assert remote.calls == []
    assert remote.reservations["r1"].status == ReservationStatus.PENDING


@pytest.mark.asyncio
async def test_cancel_approved_reservation(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1", status=ReservationStatus.APPROVED)
    updated, status_from = await uc.cancel_reservation(remote, cache, reservation_id="r1")
    assert status_from == ReservationStatus.APPROVED
    assert updated.status == ReservationStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_is_idempotent(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1", status=ReservationStatus.CANCELLED)
    updated, status_from = await uc.cancel_reservation(remote, cache, reservation_id="r1")
    assert updated.status == status_from == ReservationStatus.CANCELLED
    assert "update_reservation" not in remote.calls


@pytest.mark.asyncio
async def test_cancel_completed_reservation_is_refused(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1", status=ReservationStatus.COMPLETED)
    with pytest.raises(InvalidTransitionError):
        await uc.cancel_reservation(remote, cache, reservation_id="r1")


@pytest.mark.asyncio
async def test_get_reservation_raises_when_missing(remote) -> None:
    with pytest.raises(NotFoundError):
        await uc.get_reservation(remote, reservation_id="ghost")


@pytest.mark.asyncio
async def test_sync_user_reservations_copies_remote_rows(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1", user_id="u1")
    remote.reservations["r2"] = make_reservation("r2", user_id="u2")

    assert await uc.sync_user_reservations(remote, cache, user_id="u1") is True
    assert set(cache.reservations) == {"r1"}


@pytest.mark.asyncio
async def test_sync_keeps_cache_when_remote_down(remote, cache, make_reservation) -> None:
    cached = make_reservation("r1")
    cache.reservations["r1"] = cached
    remote.fail = True

    assert await uc.sync_pending_reservations(remote, cache) is False
    assert cache.reservations == {"r1": cached}


@pytest.mark.asyncio
async def test_create_stores_whole_second_timestamp(remote, cache, requester) -> None:
    created = await uc.create_reservation(remote, cache, request=_request(), requester=requester)
    assert created.created_at.microsecond == 0
    assert cache.reservations[created.id].created_at == created.created_at


@pytest.mark.asyncio
async def test_approve_refuses_when_status_changed_after_read(remote, cache, make_reservation, monkeypatch) -> None:
    # The owner cancels between the admin's read and write
    remote.reservations["r1"] = make_reservation("r1", status=ReservationStatus.CANCELLED)
    stale = make_reservation("r1")

    async def _stale_read(reservation_id: str) -> ReservationRead:
        return stale

    monkeypatch.setattr(remote, "get_reservation", _stale_read)

    with pytest.raises(InvalidTransitionError):
        await uc.approve_reservation(remote, cache, reservation_id="r1", approver_id="admin42")
    assert remote.reservations["r1"].status == ReservationStatus.CANCELLED
    assert remote.reservations["r1"].approved_by is None
    assert cache.reservations == {}


@pytest.mark.asyncio
async def test_repeated_transition_repairs_a_stale_cache(remote, cache, make_reservation) -> None:
    cache.reservations["r1"] = make_reservation("r1")
    remote.reservations["r1"] = make_reservation("r1")

    cache.fail_writes = True
    await uc.approve_reservation(remote, cache, reservation_id="r1", approver_id="admin42")
    assert cache.reservations["r1"].status == ReservationStatus.PENDING

    cache.fail_writes = False
    updated, status_from = await uc.approve_reservation(remote, cache, reservation_id="r1", approver_id="admin42")

    assert status_from == ReservationStatus.APPROVED
    assert cache.reservations["r1"] == updated
    assert remote.calls.count("update_reservation") == 1


@pytest.mark.asyncio
async def test_pending_sync_refreshes_rows_that_left_pending(remote, cache, make_reservation) -> None:
    cache.reservations["r1"] = make_reservation("r1")
    remote.reservations["r1"] = make_reservation("r1", status=ReservationStatus.REJECTED, rejection_reason="Lluvia")
    remote.reservations["r2"] = make_reservation("r2")

    assert await uc.sync_pending_reservations(remote, cache) is True

    assert cache.reservations["r1"].status == ReservationStatus.REJECTED
    assert cache.reservations["r2"].status == ReservationStatus.PENDING
    assert remote.calls == ["list_reservations", "list_reservations"]


@pytest.mark.asyncio
async def test_pending_sync_skips_refresh_when_cache_agrees(remote, cache, make_reservation) -> None:
    remote.reservations["r1"] = make_reservation("r1")
    cache.reservations["r1"] = make_reservation("r1")

    assert await uc.sync_pending_reservations(remote, cache) is True
    assert remote.calls == ["list_reservations"]
