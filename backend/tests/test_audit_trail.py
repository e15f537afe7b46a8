"""
Tests per lo storico stati (BookingTrack).
"""

import datetime
from unittest.mock import patch

import pytest
from sqlalchemy import select

from app.core.exceptions import ImmutableRecordError
from app.models import BookingTrack
from app.services.audit_trail_service import (
    TIMESTAMP_STEP,
    audit_trail_service,
    next_track_timestamp,
)

UTC = datetime.timezone.utc


class TestNextTrackTimestamp:
    """max(now, last + 1µs)."""

    def test_first_entry_uses_now(self):
        now = datetime.datetime(2026, 5, 1, 10, 0, tzinfo=UTC)
        assert next_track_timestamp(None, now) == now

    def test_now_after_last(self):
        last = datetime.datetime(2026, 5, 1, 9, 0, tzinfo=UTC)
        now = datetime.datetime(2026, 5, 1, 10, 0, tzinfo=UTC)
        assert next_track_timestamp(last, now) == now

    def test_same_instant_is_bumped(self):
        now = datetime.datetime(2026, 5, 1, 10, 0, tzinfo=UTC)
        assert next_track_timestamp(now, now) == now + TIMESTAMP_STEP

    def test_clock_going_backwards(self):
        last = datetime.datetime(2026, 5, 1, 10, 0, 0, 500, tzinfo=UTC)
        now = datetime.datetime(2026, 5, 1, 9, 59, tzinfo=UTC)
        assert next_track_timestamp(last, now) == last + TIMESTAMP_STEP

    def test_naive_last_is_treated_as_utc(self):
        last = datetime.datetime(2026, 5, 1, 10, 0)
        now = datetime.datetime(2026, 5, 1, 10, 0, tzinfo=UTC)
        result = next_track_timestamp(last, now)
        assert result == now + TIMESTAMP_STEP
        assert result.tzinfo is not None


class TestAuditTrailService:

    @pytest.mark.asyncio
    async def test_entries_are_strictly_increasing_and_newest_first(self, db, make_booking):
        booking = await make_booking()
        frozen = datetime.datetime(2026, 5, 1, 10, 0, tzinfo=UTC)

        with patch("app.services.audit_trail_service.utcnow", return_value=frozen):
            await audit_trail_service.append(db, booking.id, None, "pending", "creata")
            await audit_trail_service.append(db, booking.id, "pending", "confirmed")
            await audit_trail_service.append(db, booking.id, "confirmed", "in_progress")
        await db.commit()

        tracks = await audit_trail_service.list_for_booking(db, booking.id)

        assert [t.new_status for t in tracks] == ["in_progress", "confirmed", "pending"]
        timestamps = [t.created_at for t in tracks]
        assert timestamps[0] > timestamps[1] > timestamps[2]

    @pytest.mark.asyncio
    async def test_tracks_are_scoped_per_booking(self, db, make_booking):
        first = await make_booking()
        second = await make_booking()

        await audit_trail_service.append(db, first.id, "pending", "confirmed")
        await audit_trail_service.append(db, second.id, "pending", "cancelled")
        await db.commit()

        tracks = await audit_trail_service.list_for_booking(db, first.id)
        assert len(tracks) == 1
        assert tracks[0].new_status == "confirmed"

    @pytest.mark.asyncio
    async def test_track_cannot_be_updated(self, db, make_booking):
        booking = await make_booking()
        await audit_trail_service.append(db, booking.id, "pending", "confirmed", "ok")
        await db.commit()

        track = (await db.execute(select(BookingTrack))).scalar_one()
        track.note = "modificata"

        with pytest.raises(ImmutableRecordError):
            await db.flush()
        await db.rollback()

    @pytest.mark.asyncio
    async def test_track_cannot_be_deleted(self, db, make_booking):
        booking = await make_booking()
        booking_id = booking.id
        await audit_trail_service.append(db, booking_id, "pending", "confirmed")
        await db.commit()

        track = (await db.execute(select(BookingTrack))).scalar_one()
        await db.delete(track)

        with pytest.raises(ImmutableRecordError):
            await db.flush()
        await db.rollback()

        remaining = await audit_trail_service.list_for_booking(db, booking_id)
        assert len(remaining) == 1
