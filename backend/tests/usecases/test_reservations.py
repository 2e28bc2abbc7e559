import asyncio
from datetime import datetime
from typing import Sequence, Tuple
from zoneinfo import ZoneInfo

import pytest
from event_booking.domain import services as svc
from event_booking.domain.errors import (
    ACCESS_DENIED,
    EVENT_NOT_FOUND,
    MISSING_PARAMETERS,
    AccessDeniedError,
    InvalidRequestError,
)
from event_booking.domain.services import ArrivalDraft, EventDraft
from event_booking.models import Arrival, Event, Reservation
from event_booking.usecases import events as event_uc
from event_booking.usecases import reservations as uc
from event_booking.utils.locks import KeyedLock

UTC = ZoneInfo("UTC")
NOW = datetime(2099, 6, 1, 6, 0)


async def _create_event(
    gate,
    repos,
    host,
    *,
    name: str = "Board games",
    start: str = "09:00",
    end: str = "10:00",
    arrivals: Sequence[Tuple[str, object]] = (("09:00", 1),),
) -> Tuple[Event, list[Arrival]]:
    def at(hhmm: str) -> str:
        return f"2099-06-01T{hhmm}:00+00:00"

    draft = EventDraft(
        name=name,
        location="Hall",
        host="Host",
        start_time=at(start),
        end_time=at(end),
        description="desc",
        arrivals=tuple(ArrivalDraft(arrival_time=at(t), capacity=c) for t, c in arrivals),
    )
    return await event_uc.create_event(
        gate,
        repos.events,
        repos.arrivals,
        user_id=host.user_id,
        token=host.token,
        draft=draft,
        now=NOW,
        zone=UTC,
    )


async def _reserve(gate, repos, who, arrival_id: str | None, now: datetime = NOW) -> Reservation:
    return await uc.reserve(
        gate,
        repos.users,
        repos.arrivals,
        repos.reservations,
        user_id=who.user_id,
        token=who.token,
        arrival_id=arrival_id,
        now=now,
    )


async def _withdraw(gate, repos, who, event_id: str | None, now: datetime = NOW) -> int:
    return await uc.withdraw(
        gate,
        repos.events,
        repos.reservations,
        user_id=who.user_id,
        token=who.token,
        event_id=event_id,
        now=now,
    )


@pytest.mark.asyncio
async def test_last_seat_freed_by_withdrawal_goes_to_next_user(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    first, second, third = [await accounts.sign_in(n) for n in ("amy", "ben", "cat")]
    event, (arrival,) = await _create_event(gate, repos, host)

    reservation = await _reserve(gate, repos, first, arrival.id)
    assert len(reservation.id) == 16
    assert reservation.id.isdigit()

    with pytest.raises(InvalidRequestError) as excinfo:
        await _reserve(gate, repos, second, arrival.id)
    assert excinfo.value.message == svc.FULLY_BOOKED

    assert await _withdraw(gate, repos, first, event.id) == 1

    assert (await _reserve(gate, repos, third, arrival.id)).user_id == third.user_id


@pytest.mark.asyncio
async def test_second_withdraw_reports_not_registered(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    event, (arrival,) = await _create_event(gate, repos, host)
    await _reserve(gate, repos, guest, arrival.id)

    await _withdraw(gate, repos, guest, event.id)
    with pytest.raises(InvalidRequestError) as excinfo:
        await _withdraw(gate, repos, guest, event.id)
    assert excinfo.value.message == svc.NOT_REGISTERED


@pytest.mark.asyncio
async def test_withdraw_unknown_and_past_events(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    event, (arrival,) = await _create_event(gate, repos, host)
    await _reserve(gate, repos, guest, arrival.id)

    with pytest.raises(InvalidRequestError) as excinfo:
        await _withdraw(gate, repos, guest, "0000000000000000")
    assert excinfo.value.message == EVENT_NOT_FOUND

    with pytest.raises(InvalidRequestError) as excinfo:
        await _withdraw(gate, repos, guest, event.id, now=datetime(2099, 6, 1, 11, 0))
    assert excinfo.value.message == svc.WITHDRAW_PAST_EVENT


@pytest.mark.asyncio
async def test_second_option_of_same_event_is_a_duplicate(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    _, (early, late) = await _create_event(
        gate, repos, host, end="12:00", arrivals=(("09:00", 5), ("11:00", 5))
    )
    await _reserve(gate, repos, guest, early.id)

    with pytest.raises(InvalidRequestError) as excinfo:
        await _reserve(gate, repos, guest, late.id)
    assert excinfo.value.message == svc.ALREADY_REGISTERED


@pytest.mark.asyncio
@pytest.mark.parametrize("booked_first", ["A", "B"])
async def test_overlapping_events_conflict_in_both_orders(gate, repos, accounts, booked_first: str) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    _, (a,) = await _create_event(gate, repos, host, name="A", start="09:00", end="10:00", arrivals=(("09:00", 5),))
    _, (b,) = await _create_event(gate, repos, host, name="B", start="09:30", end="10:30", arrivals=(("09:30", 5),))
    first, then = (a, b) if booked_first == "A" else (b, a)

    await _reserve(gate, repos, guest, first.id)
    with pytest.raises(InvalidRequestError) as excinfo:
        await _reserve(gate, repos, guest, then.id)
    assert excinfo.value.message == svc.conflict_message(f"{booked_first} @ Hall")


@pytest.mark.asyncio
async def test_back_to_back_events_do_not_conflict(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    _, (a,) = await _create_event(gate, repos, host, name="A", start="09:00", end="10:00", arrivals=(("09:00", 5),))
    _, (b,) = await _create_event(gate, repos, host, name="B", start="10:00", end="11:00", arrivals=(("10:00", 5),))

    await _reserve(gate, repos, guest, a.id)
    await _reserve(gate, repos, guest, b.id)


@pytest.mark.asyncio
async def test_late_arrival_avoids_conflict_with_earlier_event(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    _, (a,) = await _create_event(gate, repos, host, name="A", start="09:00", end="10:00", arrivals=(("09:00", 5),))
    _, (_, b_late) = await _create_event(
        gate, repos, host, name="B", start="09:30", end="11:00", arrivals=(("09:30", 5), ("10:00", 5))
    )

    await _reserve(gate, repos, guest, a.id)
    await _reserve(gate, repos, guest, b_late.id)


@pytest.mark.asyncio
async def test_withdrawn_reservation_no_longer_conflicts(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    a_event, (a,) = await _create_event(gate, repos, host, name="A", arrivals=(("09:00", 5),))
    _, (b,) = await _create_event(gate, repos, host, name="B", start="09:30", end="10:30", arrivals=(("09:30", 5),))

    await _reserve(gate, repos, guest, a.id)
    await _withdraw(gate, repos, guest, a_event.id)
    await _reserve(gate, repos, guest, b.id)


@pytest.mark.asyncio
async def test_unlimited_option_never_fills(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    _, (arrival,) = await _create_event(gate, repos, host, arrivals=(("09:00", "-1"),))
    for name in ("amy", "ben", "cat"):
        await _reserve(gate, repos, await accounts.sign_in(name), arrival.id)

    summary, attendees = await event_uc.get_event(
        gate, repos.events, user_id=host.user_id, token=host.token, event_id=arrival.event_id
    )
    assert summary.filled == 3
    assert summary.capacity == -1
    assert [a.username for a in attendees] == ["amy", "ben", "cat"]


@pytest.mark.asyncio
async def test_reserve_rejections(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    _, (arrival,) = await _create_event(gate, repos, host)

    with pytest.raises(InvalidRequestError) as excinfo:
        await _reserve(gate, repos, guest, None)
    assert excinfo.value.message == MISSING_PARAMETERS

    with pytest.raises(InvalidRequestError) as excinfo:
        await _reserve(gate, repos, guest, "1234123412341234")
    assert excinfo.value.message == svc.ARRIVAL_NOT_FOUND

    with pytest.raises(InvalidRequestError) as excinfo:
        await _reserve(gate, repos, guest, arrival.id, now=datetime(2099, 6, 1, 10, 30))
    assert excinfo.value.message == svc.RESERVE_PAST_EVENT

    with pytest.raises(AccessDeniedError) as denied:
        await uc.reserve(
            gate,
            repos.users,
            repos.arrivals,
            repos.reservations,
            user_id=guest.user_id,
            token=host.token,
            arrival_id=arrival.id,
            now=NOW,
        )
    assert denied.value.message == ACCESS_DENIED


@pytest.mark.asyncio
async def test_concurrent_requests_for_last_seat_admit_one(gate, repos, accounts, store) -> None:
    host = await accounts.sign_in("host")
    first = await accounts.sign_in("amy")
    second = await accounts.sign_in("ben")
    _, (arrival,) = await _create_event(gate, repos, host)
    store.interleave = True
    locks = KeyedLock()

    async def attempt(who) -> Reservation:
        async with locks.hold(arrival.id):
            return await _reserve(gate, repos, who, arrival.id)

    results = await asyncio.gather(attempt(first), attempt(second), return_exceptions=True)

    booked = [r for r in results if isinstance(r, Reservation)]
    rejected = [r for r in results if isinstance(r, InvalidRequestError)]
    assert len(booked) == 1
    assert len(rejected) == 1
    assert rejected[0].message == svc.FULLY_BOOKED
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_reserve_locks_rows_before_any_plain_read(gate, repos, accounts, monkeypatch) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    _, (arrival,) = await _create_event(gate, repos, host)
    calls: list[str] = []

    def record(prefix: str, repo: object, name: str) -> None:
        original = getattr(repo, name)

        async def recorded(*args: object, **kwargs: object) -> object:
            calls.append(f"{prefix}.{name}")
            return await original(*args, **kwargs)

        monkeypatch.setattr(repo, name, recorded)

    record("users", repos.users, "get")
    record("users", repos.users, "get_for_update")
    record("arrivals", repos.arrivals, "get_for_update")
    record("arrivals", repos.arrivals, "occupancy")
    record("reservations", repos.reservations, "has_active_for_event")
    record("reservations", repos.reservations, "list_active_spans")
    record("reservations", repos.reservations, "create")

    with pytest.raises(InvalidRequestError):
        await _reserve(gate, repos, guest, None)
    assert calls == []

    await _reserve(gate, repos, guest, arrival.id)
    assert calls == [
        "users.get_for_update",
        "arrivals.get_for_update",
        "users.get",
        "arrivals.occupancy",
        "reservations.has_active_for_event",
        "reservations.list_active_spans",
        "reservations.create",
    ]


@pytest.mark.asyncio
async def test_history_lists_canceled_rows_newest_first(gate, repos, accounts) -> None:
    host = await accounts.sign_in("host")
    guest = await accounts.sign_in("guest")
    a_event, (a,) = await _create_event(gate, repos, host, name="A", arrivals=(("09:00", 2),))
    _, (b,) = await _create_event(gate, repos, host, name="B", start="11:00", end="12:00", arrivals=(("11:00", 2),))

    await _reserve(gate, repos, guest, a.id)
    await _withdraw(gate, repos, guest, a_event.id)
    await _reserve(gate, repos, guest, b.id)

    history = await uc.list_user_reservations(gate, repos.reservations, user_id=guest.user_id, token=guest.token)
    assert [(h.event.name, h.is_registered) for h in history] == [("B", True), ("A", False)]
    assert history[0].filled == 1
    assert history[1].filled == 0
