"""Tests for the repair request store and its reminder side effects."""

from datetime import timedelta

import pytest

from repairdesk.core.request_store import (
    CLIENT_EXPORT_COLUMNS,
    REQUEST_EXPORT_COLUMNS,
    RequestStore,
)
from repairdesk.errors import Forbidden, InvalidInput, InvalidTransition, NotFound
from repairdesk.schemas.request_schema import RequestStatus, Urgency

from tests.conftest import CLIENT_ID, OPERATOR_ID, OTHER_CLIENT_ID, START, is_operator


def _standard(store, user_id=CLIENT_ID, item="service_1", price=1500):
    return store.create(user_id, item, is_bundle=False, price=price)


class TestCreate:
    def test_new_request_is_pending(self, store):
        request = _standard(store)
        assert request.status == RequestStatus.PENDING
        assert request.user_id == CLIENT_ID
        assert request.final_price == 1500
        assert request.created_at == START
        assert request.comment is None
        assert request.scheduled_time is None

    def test_id_is_millisecond_timestamp(self, store):
        request = _standard(store)
        assert request.id == int(START.timestamp() * 1000)

    def test_ids_unique_at_same_instant(self, store):
        first = _standard(store)
        second = _standard(store)
        assert second.id > first.id

    def test_standard_credits_tenth_of_price(self, store, ledger):
        _standard(store, price=1999)
        assert ledger.balance(CLIENT_ID) == 199

    def test_bundle_credits_fixed_points(self, store, ledger):
        store.create(CLIENT_ID, "offer_3", is_bundle=True, price=7000)
        assert ledger.balance(CLIENT_ID) == 750

    def test_unknown_bundle_not_found(self, store, ledger):
        with pytest.raises(NotFound):
            store.create(CLIENT_ID, "offer_99", is_bundle=True, price=100)
        assert store.all() == []
        assert ledger.balance(CLIENT_ID) == 0

    def test_negative_price_rejected(self, store):
        with pytest.raises(InvalidInput):
            _standard(store, price=-1)

    def test_zero_price_allowed(self, store, ledger):
        _standard(store, price=0)
        assert ledger.balance(CLIENT_ID) == 0

    def test_arms_pending_reminder(self, store, scheduler):
        request = _standard(store)
        reminder = scheduler.get(request.id)
        assert reminder is not None
        assert reminder.fire_at == START + timedelta(hours=24)
        assert reminder.notification.target_user_id == CLIENT_ID
        assert reminder.notification.urgency == Urgency.HIGH
        assert str(request.id) in reminder.notification.text

    def test_returned_snapshot_is_detached(self, store):
        request = _standard(store)
        request.status = RequestStatus.COMPLETED
        assert store.get(request.id).status == RequestStatus.PENDING


class TestTransition:
    def test_unknown_request(self, store):
        with pytest.raises(NotFound):
            store.transition(1, RequestStatus.IN_PROGRESS, OPERATOR_ID)

    def test_not_found_checked_before_authority(self, store):
        with pytest.raises(NotFound):
            store.transition(1, RequestStatus.IN_PROGRESS, CLIENT_ID)

    def test_non_operator_forbidden(self, store):
        request = _standard(store)
        with pytest.raises(Forbidden):
            store.transition(request.id, RequestStatus.IN_PROGRESS, CLIENT_ID)
        assert store.get(request.id).status == RequestStatus.PENDING

    def test_authority_checked_before_table(self, store):
        request = _standard(store)
        with pytest.raises(Forbidden):
            store.transition(request.id, RequestStatus.COMPLETED, CLIENT_ID)

    def test_unreachable_status(self, store):
        request = _standard(store)
        with pytest.raises(InvalidTransition):
            store.transition(request.id, RequestStatus.COMPLETED, OPERATOR_ID)

    def test_unknown_status_string(self, store):
        request = _standard(store)
        with pytest.raises(InvalidInput):
            store.transition(request.id, "archived", OPERATOR_ID)

    def test_accepts_status_value_string(self, store):
        request = _standard(store)
        update = store.transition(request.id, "in_progress", OPERATOR_ID)
        assert update.request.status == RequestStatus.IN_PROGRESS

    def test_yields_owner_notification(self, store):
        request = _standard(store)
        update = store.transition(request.id, RequestStatus.CANCELLED, OPERATOR_ID)
        assert len(update.notifications) == 1
        intent = update.notifications[0]
        assert intent.target_user_id == CLIENT_ID
        assert "cancelled" in intent.text.lower()

    def test_completion_thanks_the_client(self, store):
        request = _standard(store)
        store.transition(request.id, RequestStatus.IN_PROGRESS, OPERATOR_ID)
        update = store.transition(request.id, RequestStatus.COMPLETED, OPERATOR_ID)
        assert "Thank you" in update.notifications[0].text

    @pytest.mark.asyncio
    async def test_leaving_pending_cancels_reminder(self, store, scheduler, notifier, clock):
        request = _standard(store)
        store.transition(request.id, RequestStatus.IN_PROGRESS, OPERATOR_ID)
        assert scheduler.get(request.id) is None
        clock.advance(hours=25)
        assert await scheduler.run_due() == 0
        assert notifier.sent == []


class TestCreationReminder:
    @pytest.mark.asyncio
    async def test_fires_after_24h_when_still_pending(self, store, scheduler, notifier, clock):
        request = _standard(store)
        clock.advance(hours=23, minutes=59)
        assert await scheduler.run_due() == 0
        clock.advance(minutes=1)
        assert await scheduler.run_due() == 1
        assert len(notifier.to(CLIENT_ID)) == 1
        assert f"#{request.id}" in notifier.sent[0].text

    @pytest.mark.asyncio
    async def test_fires_once(self, store, scheduler, clock):
        _standard(store)
        clock.advance(hours=48)
        assert await scheduler.run_due() == 1
        clock.advance(hours=48)
        assert await scheduler.run_due() == 0


class TestComment:
    def test_set_comment(self, store):
        request = _standard(store)
        updated = store.set_comment(request.id, "  bring the charger  ", OPERATOR_ID)
        assert updated.comment == "bring the charger"
        assert store.get(request.id).comment == "bring the charger"

    def test_empty_comment_rejected(self, store):
        request = _standard(store)
        with pytest.raises(InvalidInput):
            store.set_comment(request.id, "   ", OPERATOR_ID)

    def test_non_operator_forbidden(self, store):
        request = _standard(store)
        with pytest.raises(Forbidden):
            store.set_comment(request.id, "hi", CLIENT_ID)

    def test_terminal_request_rejected(self, store):
        request = _standard(store)
        store.transition(request.id, RequestStatus.CANCELLED, OPERATOR_ID)
        with pytest.raises(InvalidTransition):
            store.set_comment(request.id, "too late", OPERATOR_ID)

    def test_unknown_request(self, store):
        with pytest.raises(NotFound):
            store.set_comment(5, "hi", OPERATOR_ID)


class TestSchedule:
    def test_records_time_and_arms_pre_reminder(self, store, scheduler):
        request = _standard(store)
        when = START + timedelta(hours=3)
        update = store.set_schedule(request.id, when, OPERATOR_ID)
        assert update.request.scheduled_time == when
        assert update.reminder is not None
        assert update.reminder.fire_at == START + timedelta(hours=1)
        assert scheduler.get(request.id) is update.reminder

    def test_replaces_creation_reminder(self, store, scheduler):
        request = _standard(store)
        creation = scheduler.get(request.id)
        store.set_schedule(request.id, START + timedelta(hours=3), OPERATOR_ID)
        assert creation.cancelled
        assert len(scheduler.pending()) == 1

    def test_announces_to_owner(self, store):
        request = _standard(store)
        update = store.set_schedule(request.id, START + timedelta(hours=3), OPERATOR_ID)
        assert [i.target_user_id for i in update.notifications] == [CLIENT_ID]
        assert f"#{request.id}" in update.notifications[0].text

    def test_too_close_records_without_reminder(self, store, scheduler):
        request = _standard(store)
        creation = scheduler.get(request.id)
        when = START + timedelta(hours=1, minutes=30)
        update = store.set_schedule(request.id, when, OPERATOR_ID)
        assert update.reminder is None
        assert store.get(request.id).scheduled_time == when
        assert scheduler.get(request.id) is creation

    def test_announcement_promises_reminder_when_armed(self, store):
        request = _standard(store)
        update = store.set_schedule(request.id, START + timedelta(hours=3), OPERATOR_ID)
        assert update.notifications[0].text.endswith(
            "We will remind you 2 hours before the appointment."
        )

    def test_short_notice_announcement_promises_nothing(self, store):
        request = _standard(store)
        update = store.set_schedule(request.id, START + timedelta(hours=1), OPERATOR_ID)
        assert update.reminder is None
        assert "remind" not in update.notifications[0].text

    def test_announcement_uses_configured_lead(self, ledger, scheduler, clock):
        store = RequestStore(
            ledger, scheduler, is_operator=is_operator, clock=clock,
            pre_schedule_lead=timedelta(minutes=90),
        )
        request = _standard(store)
        update = store.set_schedule(request.id, START + timedelta(hours=3), OPERATOR_ID)
        assert update.reminder.fire_at == START + timedelta(minutes=90)
        assert "90 minutes before" in update.notifications[0].text

    def test_exactly_lead_away_has_no_reminder(self, store):
        request = _standard(store)
        update = store.set_schedule(request.id, START + timedelta(hours=2), OPERATOR_ID)
        assert update.reminder is None

    def test_past_time_rejected(self, store):
        request = _standard(store)
        with pytest.raises(InvalidInput):
            store.set_schedule(request.id, START - timedelta(minutes=1), OPERATOR_ID)
        assert store.get(request.id).scheduled_time is None

    def test_naive_time_rejected(self, store):
        request = _standard(store)
        with pytest.raises(InvalidInput):
            store.set_schedule(request.id, START.replace(tzinfo=None) + timedelta(hours=3), OPERATOR_ID)

    def test_terminal_request_rejected(self, store):
        request = _standard(store)
        store.transition(request.id, RequestStatus.CANCELLED, OPERATOR_ID)
        with pytest.raises(InvalidTransition):
            store.set_schedule(request.id, START + timedelta(hours=3), OPERATOR_ID)

    def test_non_operator_forbidden(self, store):
        request = _standard(store)
        with pytest.raises(Forbidden):
            store.set_schedule(request.id, START + timedelta(hours=3), CLIENT_ID)

    @pytest.mark.asyncio
    async def test_pre_reminder_fires_for_live_request(self, store, scheduler, notifier, clock):
        request = _standard(store)
        store.transition(request.id, RequestStatus.IN_PROGRESS, OPERATOR_ID)
        store.set_schedule(request.id, START + timedelta(hours=3), OPERATOR_ID)
        clock.advance(hours=1)
        assert await scheduler.run_due() == 1
        assert notifier.sent[-1].urgency == Urgency.HIGH

    @pytest.mark.asyncio
    async def test_pre_reminder_suppressed_after_cancellation(self, store, scheduler, notifier, clock):
        request = _standard(store)
        update = store.set_schedule(request.id, START + timedelta(hours=3), OPERATOR_ID)
        store.transition(request.id, RequestStatus.CANCELLED, OPERATOR_ID)
        clock.advance(hours=1)
        assert not await scheduler.fire(update.reminder)
        assert notifier.sent == []


class TestQueries:
    def test_newest_first(self, store, clock):
        first = _standard(store)
        clock.advance(minutes=1)
        second = _standard(store, user_id=OTHER_CLIENT_ID)
        assert [r.id for r in store.all()] == [second.id, first.id]

    def test_for_user(self, store):
        mine = _standard(store)
        _standard(store, user_id=OTHER_CLIENT_ID)
        assert [r.id for r in store.for_user(CLIENT_ID)] == [mine.id]

    def test_active_excludes_terminal(self, store):
        live = _standard(store)
        done = _standard(store)
        store.transition(done.id, RequestStatus.CANCELLED, OPERATOR_ID)
        assert [r.id for r in store.active()] == [live.id]

    def test_get_unknown(self, store):
        with pytest.raises(NotFound):
            store.get(1)

    def test_client_ids_in_first_request_order(self, store, clock):
        _standard(store, user_id=OTHER_CLIENT_ID)
        clock.advance(minutes=1)
        _standard(store, user_id=CLIENT_ID)
        clock.advance(minutes=1)
        _standard(store, user_id=OTHER_CLIENT_ID)
        assert store.client_ids() == [OTHER_CLIENT_ID, CLIENT_ID]

    def test_stats_window(self, store, clock):
        _standard(store, price=1000)
        clock.advance(hours=2)
        _standard(store, price=2500)
        stats = store.stats(START + timedelta(hours=1))
        assert stats.count == 1
        assert stats.revenue == 2500

    def test_summary(self, store):
        a = _standard(store, item="service_1", price=1500)
        _standard(store, item="service_1", price=1500, user_id=OTHER_CLIENT_ID)
        c = _standard(store, item="service_4", price=2500)
        store.transition(a.id, RequestStatus.IN_PROGRESS, OPERATOR_ID)
        store.transition(a.id, RequestStatus.COMPLETED, OPERATOR_ID)
        store.transition(c.id, RequestStatus.CANCELLED, OPERATOR_ID)

        summary = store.summary()
        assert summary.total == 3
        assert summary.active == 1
        assert summary.completed == 1
        assert summary.cancelled == 1
        assert summary.revenue == 5500
        assert summary.unique_clients == 2
        assert summary.popular_items[0] == ("service_1", 2)

    def test_client_rollups(self, store, clock):
        _standard(store, price=1500)
        clock.advance(hours=1)
        store.create(CLIENT_ID, "offer_2", is_bundle=True, price=2500)
        rollup = store.client_rollups()[0]
        assert rollup.user_id == CLIENT_ID
        assert rollup.total_orders == 2
        assert rollup.total_spent == 4000
        assert rollup.points == 150 + 250
        assert rollup.last_active_at == START + timedelta(hours=1)

    def test_export_rows_follow_columns(self, store):
        _standard(store)
        row = store.request_export_rows()[0]
        assert list(row) == REQUEST_EXPORT_COLUMNS
        client_row = store.client_export_rows()[0]
        assert list(client_row) == CLIENT_EXPORT_COLUMNS

    def test_export_rows_oldest_first(self, store, clock):
        first = _standard(store)
        clock.advance(minutes=5)
        second = _standard(store)
        assert [r["id"] for r in store.request_export_rows()] == [first.id, second.id]

    def test_reset(self, store):
        _standard(store)
        store.reset()
        assert store.all() == []


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_standard_request_lifecycle(self, store, ledger, scheduler, notifier, clock):
        request = _standard(store, price=1500)
        assert request.status == RequestStatus.PENDING
        assert ledger.balance(CLIENT_ID) == 150
        assert len(scheduler.pending()) == 1
        assert scheduler.pending()[0].fire_at == START + timedelta(hours=24)

        update = store.transition(request.id, RequestStatus.IN_PROGRESS, OPERATOR_ID)
        assert scheduler.pending() == []
        for intent in update.notifications:
            await notifier.notify(intent)
        assert len(notifier.to(CLIENT_ID)) == 1

        store.transition(request.id, RequestStatus.COMPLETED, OPERATOR_ID)
        assert store.get(request.id).is_terminal
        for status in RequestStatus:
            with pytest.raises(InvalidTransition):
                store.transition(request.id, status, OPERATOR_ID)

        clock.advance(hours=30)
        assert await scheduler.run_due() == 0

    @pytest.mark.asyncio
    async def test_schedule_arms_second_reminder(self, store, scheduler, notifier, clock):
        near = _standard(store)
        far = _standard(store)

        far_update = store.set_schedule(far.id, START + timedelta(hours=3), OPERATOR_ID)
        assert far_update.reminder.fire_at == START + timedelta(hours=1)

        near_when = START + timedelta(minutes=90)
        near_update = store.set_schedule(near.id, near_when, OPERATOR_ID)
        assert near_update.reminder is None
        assert store.get(near.id).scheduled_time == near_when

        clock.advance(hours=1)
        assert await scheduler.run_due() == 1
        assert "appointment" in notifier.sent[0].text
