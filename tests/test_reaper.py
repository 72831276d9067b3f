"""
Reaper Tests
============

Timeout-driven eviction of sessions, queues and broadcast index entries.
"""

import asyncio

from relay.services import PollStatus


class TestSweep:

    def test_idle_session_is_fully_evicted(self, relay, reaper, clock, started):
        clock.advance(relay.session_timeout + 1)
        assert reaper.sweep() >= 1

        status = relay.get_status("tourA", started, "drv1")
        assert status.broadcast is None
        assert status.session is None
        assert status.driver_queue is None
        assert status.stats.active_sessions == 0
        assert status.stats.active_driver_queues == 0
        assert status.stats.active_broadcasts == 0
        assert reaper.stats["sessions_evicted"] == 1

    def test_nothing_evicted_before_timeout(self, relay, reaper, clock, started):
        clock.advance(relay.session_timeout - 1)
        assert reaper.sweep() == 0
        assert relay.get_status(session_id=started).session is not None

    def test_pushes_keep_session_alive(self, relay, reaper, clock, started):
        clock.advance(relay.session_timeout - 10)
        relay.push_frame(started, b"\x01")
        relay.pull_frames("drv1", "tourA")
        clock.advance(20)

        assert reaper.sweep() == 0
        assert relay.get_status(session_id=started).session.status == "active"

    def test_status_polling_does_not_keep_session_alive(self, relay, reaper, clock, started):
        for _ in range(5):
            clock.advance(relay.session_timeout / 4)
            relay.get_status("tourA", started, "drv1")
        reaper.sweep()
        assert relay.get_status(session_id=started).session is None

    def test_abandoned_queue_evicted_while_session_lives(self, relay, reaper, clock, started):
        clock.advance(relay.session_timeout / 2)
        relay.push_frame(started, b"\x01")
        clock.advance(relay.session_timeout / 2 + 1)

        assert reaper.sweep() == 1
        assert reaper.stats["queues_evicted"] == 1
        status = relay.get_status("tourA", started, "drv1")
        assert status.session is not None
        assert status.driver_queue is None

    def test_rejoin_after_queue_eviction_has_no_backfill(self, relay, reaper, clock, started):
        clock.advance(relay.session_timeout / 2)
        relay.push_frame(started, b"\x01")
        relay.push_frame(started, b"\x02")
        clock.advance(relay.session_timeout / 2 + 1)
        reaper.sweep()

        joined = relay.pull_frames("drv1", "tourA")
        assert joined.status == PollStatus.ACTIVE
        assert joined.chunks == []

        relay.push_frame(started, b"\x03")
        assert [c.audio_data for c in relay.pull_frames("drv1", "tourA").chunks] == [[3]]

    def test_stopping_session_reaped_and_teardown_cancelled(self, relay, reaper, clock, scheduler, started):
        relay.stop_session(started)
        clock.advance(relay.session_timeout + 1)
        reaper.sweep()

        assert relay.get_status(session_id=started).session is None
        assert scheduler.pending == []
        assert scheduler.run_due() == 0

    def test_reaped_channel_reports_idle(self, relay, reaper, clock, started):
        clock.advance(relay.session_timeout + 1)
        reaper.sweep()
        result = relay.pull_frames("drv1", "tourA")
        assert result.success
        assert result.status == PollStatus.IDLE

    def test_new_broadcast_survives_sweep(self, relay, reaper, clock, started):
        clock.advance(relay.session_timeout + 1)
        fresh = relay.start_session("tourB", "adm2", "drv2").session_id
        reaper.sweep()

        assert relay.get_status(session_id=started).session is None
        assert relay.get_status(session_id=fresh).session.status == "active"


class TestLoop:

    def test_start_and_stop(self, relay, reaper):
        async def scenario():
            await reaper.start()
            running = reaper.running
            await asyncio.sleep(0.05)
            await reaper.stop()
            return running

        assert asyncio.run(scenario()) is True
        assert reaper.running is False
        assert reaper.stats["sweeps"] >= 1

    def test_sweep_errors_are_counted(self, relay, reaper, monkeypatch):
        def broken(now=None):
            raise RuntimeError("snapshot failed")

        monkeypatch.setattr(relay, "stale_candidates", broken)

        async def scenario():
            await reaper.start()
            await asyncio.sleep(0.05)
            await reaper.stop()

        asyncio.run(scenario())
        assert reaper.stats["errors"] >= 1
