import asyncio
import unittest

from vetdraft.scheduler import DebounceScheduler

DELAY = 0.02


class DebounceSchedulerTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.state = {"value": 0}
        self.calls = []

        async def callback():
            self.calls.append(self.state["value"])

        self.scheduler = DebounceScheduler(callback, DELAY)

    async def test_burst_runs_callback_once_with_latest_state(self):
        for value in range(1, 6):
            self.state["value"] = value
            self.scheduler.schedule()
            await asyncio.sleep(DELAY / 4)

        await asyncio.sleep(DELAY * 3)
        await self.scheduler.wait()
        self.assertEqual(self.calls, [5])

    async def test_separate_quiet_periods_run_separately(self):
        self.state["value"] = 1
        self.scheduler.schedule()
        await asyncio.sleep(DELAY * 3)
        self.state["value"] = 2
        self.scheduler.schedule()
        await asyncio.sleep(DELAY * 3)
        await self.scheduler.wait()
        self.assertEqual(self.calls, [1, 2])

    async def test_cancel_drops_pending_call(self):
        self.scheduler.schedule()
        self.assertTrue(self.scheduler.pending)
        self.scheduler.cancel()
        self.assertFalse(self.scheduler.pending)
        await asyncio.sleep(DELAY * 3)
        self.assertEqual(self.calls, [])

    async def test_flush_runs_pending_call_immediately(self):
        scheduler = DebounceScheduler(self._record_value, delay=60)
        self.state["value"] = 7
        scheduler.schedule()
        await scheduler.flush()
        self.assertEqual(self.calls, [7])
        self.assertFalse(scheduler.pending)

    async def test_flush_without_pending_call_is_noop(self):
        await self.scheduler.flush()
        self.assertEqual(self.calls, [])

    async def test_callback_failure_does_not_break_scheduler(self):
        attempts = []

        async def failing():
            attempts.append(1)
            raise RuntimeError("boom")

        scheduler = DebounceScheduler(failing, DELAY)
        with self.assertLogs("vetdraft.scheduler", level="ERROR"):
            scheduler.schedule()
            await asyncio.sleep(DELAY * 3)
            await scheduler.wait()
        scheduler.schedule()
        await asyncio.sleep(DELAY * 3)
        await scheduler.wait()
        self.assertEqual(len(attempts), 2)

    async def _record_value(self):
        self.calls.append(self.state["value"])


if __name__ == "__main__":
    unittest.main()
