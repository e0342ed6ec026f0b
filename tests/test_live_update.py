import asyncio
import time
import unittest

from usage_analytics.live_update import LiveUpdateTrigger
from usage_analytics.notifications import TOKENS_UPDATED, NotificationBus
from usage_analytics.timers import OwnedTimer


class LiveUpdateTriggerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._bus = NotificationBus()
        self._fetch_times: list[float] = []

    async def _fetch(self) -> None:
        self._fetch_times.append(time.perf_counter())

    def test_burst_of_notifications_triggers_one_fetch_after_quiet_period(self) -> None:
        trigger = LiveUpdateTrigger(name="test", bus=self._bus, fetch=self._fetch, delay_seconds=0.1)

        async def scenario() -> float:
            trigger.start()
            for _ in range(3):
                self._bus.emit(TOKENS_UPDATED)
                await asyncio.sleep(0.02)
            last = time.perf_counter() - 0.02
            await asyncio.sleep(0.25)
            trigger.close()
            return last

        last_notification = asyncio.run(scenario())
        self.assertEqual(1, len(self._fetch_times))
        self.assertGreaterEqual(self._fetch_times[0] - last_notification, 0.09)

    def test_close_cancels_pending_fetch_and_unsubscribes(self) -> None:
        trigger = LiveUpdateTrigger(name="test", bus=self._bus, fetch=self._fetch, delay_seconds=0.05)

        async def scenario() -> None:
            trigger.start()
            self._bus.emit(TOKENS_UPDATED)
            self.assertTrue(trigger.pending)
            trigger.close()
            self._bus.emit(TOKENS_UPDATED)
            await asyncio.sleep(0.15)

        asyncio.run(scenario())
        self.assertEqual([], self._fetch_times)
        self.assertEqual(0, self._bus.listener_count(TOKENS_UPDATED))
        self.assertFalse(trigger.is_listening)

    def test_set_fetch_replaces_the_function_invoked(self) -> None:
        replaced: list[str] = []

        async def other_fetch() -> None:
            replaced.append("other")

        trigger = LiveUpdateTrigger(name="test", bus=self._bus, fetch=self._fetch, delay_seconds=0.02)

        async def scenario() -> None:
            trigger.start()
            self._bus.emit(TOKENS_UPDATED)
            trigger.set_fetch(other_fetch)
            await asyncio.sleep(0.1)
            trigger.close()

        asyncio.run(scenario())
        self.assertEqual([], self._fetch_times)
        self.assertEqual(["other"], replaced)

    def test_other_events_are_ignored(self) -> None:
        trigger = LiveUpdateTrigger(name="test", bus=self._bus, fetch=self._fetch, delay_seconds=0.02)

        async def scenario() -> None:
            trigger.start()
            self._bus.emit("usage-updated")
            await asyncio.sleep(0.06)
            trigger.close()

        asyncio.run(scenario())
        self.assertEqual([], self._fetch_times)


class OwnedTimerTests(unittest.TestCase):
    def test_restart_replaces_pending_run(self) -> None:
        fired: list[int] = []
        timer = OwnedTimer("test", 0.05, lambda: fired.append(1))

        async def scenario() -> None:
            timer.start()
            await asyncio.sleep(0.02)
            timer.start()
            await asyncio.sleep(0.02)
            timer.start()
            await asyncio.sleep(0.12)
            await timer.drain()

        asyncio.run(scenario())
        self.assertEqual([1], fired)
        self.assertFalse(timer.pending)

    def test_cancel_after_fire_does_not_interrupt_callback(self) -> None:
        finished: list[str] = []
        release = asyncio.Event()

        async def slow_callback() -> None:
            await release.wait()
            finished.append("done")

        timer = OwnedTimer("test", 0.01, slow_callback)

        async def scenario() -> None:
            timer.start()
            await asyncio.sleep(0.05)
            self.assertFalse(timer.cancel())
            release.set()
            await timer.drain()

        asyncio.run(scenario())
        self.assertEqual(["done"], finished)

    def test_restart_between_expiry_and_callback_skips_the_old_run(self) -> None:
        fired: list[int] = []
        timer = OwnedTimer("test", 0.05, lambda: fired.append(1))

        async def scenario() -> tuple[list[int], bool]:
            timer.start()
            await asyncio.sleep(0.03)
            while timer.pending:
                await asyncio.sleep(0)
            timer.start()
            await asyncio.sleep(0.01)
            early = (list(fired), timer.pending)
            await asyncio.sleep(0.1)
            await timer.drain()
            return early

        early_fired, still_pending = asyncio.run(scenario())
        self.assertEqual([], early_fired)
        self.assertTrue(still_pending)
        self.assertEqual([1], fired)

    def test_cancel_between_expiry_and_callback_skips_the_run(self) -> None:
        fired: list[int] = []
        timer = OwnedTimer("test", 0.02, lambda: fired.append(1))

        async def scenario() -> None:
            timer.start()
            while timer.pending:
                await asyncio.sleep(0)
            timer.cancel()
            await asyncio.sleep(0.02)
            await timer.drain()

        asyncio.run(scenario())
        self.assertEqual([], fired)

    def test_callback_errors_are_logged_not_raised(self) -> None:
        def boom() -> None:
            raise RuntimeError("boom")

        timer = OwnedTimer("test", 0.0, boom)

        async def scenario() -> None:
            timer.start()
            await asyncio.sleep(0.02)
            await timer.drain()

        asyncio.run(scenario())
        self.assertFalse(timer.pending)


if __name__ == "__main__":
    unittest.main()
