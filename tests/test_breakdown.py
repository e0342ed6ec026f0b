import asyncio
import unittest

from tests.fakes import FakeQuery, at, host_rows, project_row, session_row
from usage_analytics.breakdown import BreakdownController


class BreakdownControllerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._backend = FakeQuery()
        self._backend.breakdowns["hosts"] = host_rows(12)
        self._backend.breakdowns["sessions"] = [
            session_row("s-1", first_seen=at(-86400), last_active=at(0)),
            session_row("s-2", first_seen=None, last_active=at(-600)),
        ]
        self._backend.breakdowns["projects"] = [project_row("/home/dev/tokenizer")]
        self._controller = BreakdownController(self._backend, days=7, confirm_timeout_seconds=0.1)


class PaginationTests(BreakdownControllerTestCase):
    def test_twelve_rows_give_three_pages(self) -> None:
        asyncio.run(self._controller.fetch())

        self.assertEqual(3, self._controller.total_pages)
        self.assertEqual(5, len(self._controller.page_rows))
        self.assertEqual([(7,)], self._backend.names("get_host_breakdown"))

    def test_page_navigation_is_bounded(self) -> None:
        asyncio.run(self._controller.fetch())

        self.assertEqual(0, self._controller.previous_page())
        self.assertEqual(1, self._controller.next_page())
        self.assertEqual(2, self._controller.next_page())
        self.assertEqual(2, self._controller.next_page())
        self.assertEqual(["host-10", "host-11"], [r.hostname for r in self._controller.page_rows])

    def test_current_page_clamps_when_rows_shrink(self) -> None:
        async def scenario() -> None:
            await self._controller.fetch()
            self._controller.next_page()
            self._controller.next_page()
            self.assertEqual(2, self._controller.current_page)
            self._backend.breakdowns["hosts"] = host_rows(4)
            await self._controller.refresh()

        asyncio.run(scenario())
        self.assertEqual(0, self._controller.current_page)
        self.assertEqual(1, self._controller.total_pages)
        self.assertEqual(4, len(self._controller.page_rows))

    def test_empty_breakdown_still_has_one_page(self) -> None:
        self._backend.breakdowns["hosts"] = []
        asyncio.run(self._controller.fetch())

        self.assertEqual(1, self._controller.total_pages)
        self.assertEqual(0, self._controller.current_page)
        self.assertEqual((), self._controller.page_rows)


class SelectionTests(BreakdownControllerTestCase):
    def test_select_then_reselect_toggles_off(self) -> None:
        asyncio.run(self._controller.fetch())
        row = self._controller.rows[0]

        selection = self._controller.select_row(row)
        self.assertIsNotNone(selection)
        self.assertEqual(("host", "host-0"), (selection.kind, selection.key))
        self.assertEqual(row.last_active, selection.first_seen)

        self.assertIsNone(self._controller.select_row(row))
        self.assertIsNone(self._controller.selection)

    def test_session_selection_keeps_first_seen(self) -> None:
        async def scenario() -> None:
            await self._controller.set_mode("sessions")

        asyncio.run(scenario())
        first, second = self._controller.rows

        self.assertEqual(at(-86400), self._controller.select_row(first).first_seen)
        self.assertEqual(at(-600), self._controller.select_row(second).first_seen)

    def test_selecting_a_row_outside_the_result_set_is_rejected(self) -> None:
        asyncio.run(self._controller.fetch())

        with self.assertRaises(ValueError):
            self._controller.select_row(project_row("/elsewhere"))

    def test_mode_switch_clears_selection_and_resets_page(self) -> None:
        async def scenario() -> None:
            await self._controller.fetch()
            self._controller.next_page()
            self._controller.select_row(self._controller.page_rows[0])
            await self._controller.set_mode("projects")

        asyncio.run(scenario())
        self.assertIsNone(self._controller.selection)
        self.assertEqual(0, self._controller.page)
        self.assertEqual("projects", self._controller.mode)
        self.assertEqual(["/home/dev/tokenizer"], [r.project for r in self._controller.rows])

    def test_unknown_mode_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            asyncio.run(self._controller.set_mode("machines"))


class ModeStalenessTests(BreakdownControllerTestCase):
    def test_rows_from_previous_mode_never_surface(self) -> None:
        gate = asyncio.Event()
        self._backend.gates["get_host_breakdown"] = gate

        async def scenario() -> None:
            hosts_fetch = asyncio.create_task(self._controller.fetch())
            await asyncio.sleep(0)
            sessions_fetch = asyncio.create_task(self._controller.set_mode("sessions"))
            await asyncio.sleep(0)
            await sessions_fetch
            gate.set()
            await hosts_fetch

        asyncio.run(scenario())
        self.assertEqual("sessions", self._controller.mode)
        self.assertEqual(["s-1", "s-2"], [r.session_id for r in self._controller.rows])
        self.assertFalse(self._controller.loading)

    def test_rows_hidden_while_new_mode_is_loading(self) -> None:
        gate = asyncio.Event()

        async def scenario() -> None:
            await self._controller.fetch()
            self._backend.gates["get_project_breakdown"] = gate
            switch = asyncio.create_task(self._controller.set_mode("projects"))
            await asyncio.sleep(0)
            self.assertEqual((), self._controller.rows)
            self.assertTrue(self._controller.loading)
            gate.set()
            await switch

        asyncio.run(scenario())
        self.assertEqual(1, len(self._controller.rows))

    def test_error_reported_without_rows(self) -> None:
        self._backend.failures["get_host_breakdown"] = RuntimeError("breakdown failed")
        asyncio.run(self._controller.fetch())

        self.assertEqual("breakdown failed", self._controller.error)
        self.assertEqual((), self._controller.rows)


class DeleteWorkflowTests(BreakdownControllerTestCase):
    def test_first_request_only_arms_confirmation(self) -> None:
        async def scenario() -> str:
            await self._controller.fetch()
            self._controller.select_row(self._controller.rows[0])
            return await self._controller.request_delete()

        outcome = asyncio.run(scenario())
        self.assertEqual("confirm", outcome)
        self.assertTrue(self._controller.confirm_pending)
        self.assertEqual([], self._backend.names("delete_host_data"))
        self.assertEqual(12, len(self._controller.rows))

    def test_second_request_within_window_deletes_and_refetches(self) -> None:
        async def scenario() -> str:
            await self._controller.fetch()
            self._controller.select_row(self._controller.rows[0])
            await self._controller.request_delete()
            return await self._controller.request_delete()

        outcome = asyncio.run(scenario())
        self.assertEqual("deleted", outcome)
        self.assertEqual([("host-0",)], self._backend.names("delete_host_data"))
        self.assertIsNone(self._controller.selection)
        self.assertFalse(self._controller.confirm_pending)
        self.assertFalse(self._controller.deleting)
        self.assertEqual(11, len(self._controller.rows))
        self.assertEqual(2, len(self._backend.names("get_host_breakdown")))

    def test_confirmation_expires_and_restarts_first_phase(self) -> None:
        async def scenario() -> list[str]:
            await self._controller.fetch()
            self._controller.select_row(self._controller.rows[0])
            first = await self._controller.request_delete()
            await asyncio.sleep(0.25)
            self.assertFalse(self._controller.confirm_pending)
            second = await self._controller.request_delete()
            return [first, second]

        outcomes = asyncio.run(scenario())
        self.assertEqual(["confirm", "confirm"], outcomes)
        self.assertEqual([], self._backend.names("delete_host_data"))
        self.assertIsNotNone(self._controller.selection)

    def test_row_click_cancels_pending_confirmation(self) -> None:
        async def scenario() -> None:
            await self._controller.fetch()
            self._controller.select_row(self._controller.rows[0])
            await self._controller.request_delete()
            self._controller.select_row(self._controller.rows[1])
            self.assertFalse(self._controller.confirm_pending)
            self.assertEqual("confirm", await self._controller.request_delete())

        asyncio.run(scenario())
        self.assertEqual([], self._backend.names("delete_host_data"))

    def test_clear_selection_cancels_pending_confirmation(self) -> None:
        async def scenario() -> str:
            await self._controller.fetch()
            self._controller.select_row(self._controller.rows[0])
            await self._controller.request_delete()
            self._controller.clear_selection()
            return await self._controller.request_delete()

        self.assertEqual("ignored", asyncio.run(scenario()))
        self.assertFalse(self._controller.confirm_pending)

    def test_delete_routes_by_selection_kind(self) -> None:
        async def scenario() -> None:
            await self._controller.set_mode("sessions")
            self._controller.select_row(self._controller.rows[1])
            await self._controller.request_delete()
            await self._controller.request_delete()
            await self._controller.set_mode("projects")
            self._controller.select_row(self._controller.rows[0])
            await self._controller.request_delete()
            await self._controller.request_delete()

        asyncio.run(scenario())
        self.assertEqual([("s-2",)], self._backend.names("delete_session_data"))
        self.assertEqual([("/home/dev/tokenizer",)], self._backend.names("delete_project_data"))

    def test_mode_switch_cancels_pending_confirmation(self) -> None:
        async def scenario() -> None:
            await self._controller.fetch()
            self._controller.select_row(self._controller.rows[0])
            await self._controller.request_delete()
            await self._controller.set_mode("projects")

        asyncio.run(scenario())
        self.assertFalse(self._controller.confirm_pending)
        self.assertFalse(self._controller._confirm_timer.pending)
        self.assertEqual([], self._backend.names("delete_host_data"))

    def test_close_cancels_confirm_expiry(self) -> None:
        changes: list[bool] = []
        controller = BreakdownController(
            self._backend,
            days=7,
            confirm_timeout_seconds=0.05,
            on_change=lambda: changes.append(controller.confirm_pending),
        )

        async def scenario() -> int:
            await controller.fetch()
            controller.select_row(controller.rows[0])
            await controller.request_delete()
            controller.close()
            after_close = len(changes)
            await asyncio.sleep(0.15)
            return after_close

        after_close = asyncio.run(scenario())
        self.assertEqual(after_close, len(changes))
        self.assertFalse(controller.confirm_pending)
        self.assertFalse(controller._confirm_timer.pending)

    def test_delete_clamps_current_page_when_rows_shrink(self) -> None:
        async def scenario() -> None:
            await self._controller.fetch()
            self._controller.next_page()
            self._controller.next_page()
            target = self._controller.page_rows[0]
            self._controller.select_row(target)
            self._backend.breakdowns["hosts"] = host_rows(4) + [target]
            await self._controller.request_delete()
            await self._controller.request_delete()

        asyncio.run(scenario())
        self.assertEqual([("host-10",)], self._backend.names("delete_host_data"))
        self.assertEqual(2, self._controller.page)
        self.assertEqual(0, self._controller.current_page)
        self.assertEqual(1, self._controller.total_pages)
        self.assertEqual(4, len(self._controller.page_rows))

    def test_failed_delete_propagates_and_keeps_selection(self) -> None:
        self._backend.failures["delete_host_data"] = RuntimeError("disk I/O error")

        async def scenario() -> None:
            await self._controller.fetch()
            self._controller.select_row(self._controller.rows[0])
            await self._controller.request_delete()
            with self.assertRaises(RuntimeError):
                await self._controller.request_delete()

        asyncio.run(scenario())
        self.assertIsNotNone(self._controller.selection)
        self.assertFalse(self._controller.deleting)
        self.assertEqual(12, len(self._controller.rows))
        self.assertEqual(1, len(self._backend.names("get_host_breakdown")))


if __name__ == "__main__":
    unittest.main()
