"""
Timer Scheduler Tests
=====================

AsyncioTimerScheduler: delayed callbacks, cancellation, cross-thread use.
"""

import asyncio

from relay.services import AsyncioTimerScheduler


def run(coro_fn):
    return asyncio.run(coro_fn())


class TestAsyncioTimerScheduler:

    def test_fires_after_delay(self):
        async def scenario():
            sched = AsyncioTimerScheduler(asyncio.get_running_loop())
            fired = []
            sched.call_later(0.01, lambda: fired.append("a"))
            assert fired == []
            await asyncio.sleep(0.1)
            return fired, sched.pending

        fired, pending = run(scenario)
        assert fired == ["a"]
        assert pending == 0

    def test_cancelled_timer_never_fires(self):
        async def scenario():
            sched = AsyncioTimerScheduler(asyncio.get_running_loop())
            fired = []
            handle = sched.call_later(0.01, lambda: fired.append("b"))
            await asyncio.sleep(0)
            handle.cancel()
            await asyncio.sleep(0.1)
            return fired

        assert run(scenario) == []

    def test_cancel_all(self):
        async def scenario():
            sched = AsyncioTimerScheduler(asyncio.get_running_loop())
            fired = []
            for i in range(3):
                sched.call_later(0.01, lambda i=i: fired.append(i))
            sched.cancel_all()
            await asyncio.sleep(0.1)
            return fired, sched.pending

        assert run(scenario) == ([], 0)

    def test_schedule_from_worker_thread(self):
        async def scenario():
            sched = AsyncioTimerScheduler(asyncio.get_running_loop())
            fired = []
            await asyncio.to_thread(sched.call_later, 0.01, lambda: fired.append("t"))
            await asyncio.sleep(0.1)
            return fired

        assert run(scenario) == ["t"]

    def test_failing_callback_does_not_stop_others(self):
        async def scenario():
            sched = AsyncioTimerScheduler(asyncio.get_running_loop())
            fired = []

            def broken():
                raise ValueError("boom")

            sched.call_later(0.01, broken)
            sched.call_later(0.02, lambda: fired.append("ok"))
            await asyncio.sleep(0.1)
            return fired

        assert run(scenario) == ["ok"]
