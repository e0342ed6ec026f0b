import asyncio

from dotenv import load_dotenv
from loguru import logger

from usage_analytics.analytics import AnalyticsController
from usage_analytics.app_config import load_json_config, parse_app_config, resolve_runtime_env
from usage_analytics.commands.router import CommandRouter
from usage_analytics.commands.view_command import HELP_TEXT, format_view, parse_row_index
from usage_analytics.http_query import HttpQueryClient
from usage_analytics.logging_config import setup_logging
from usage_analytics.notifications import NotificationBus
from usage_analytics.query_interface import QueryError

LINE_PREFIX = "analytics> "


def _print_lines(lines: list[str]) -> None:
    for line in lines:
        print(line)


def build_router(view: AnalyticsController) -> CommandRouter:
    async def on_help(_args: list[str]) -> None:
        _print_lines([f"{LINE_PREFIX}{line}" for line in HELP_TEXT])

    async def on_show(_args: list[str]) -> None:
        _print_lines(format_view(view, line_prefix=LINE_PREFIX))

    async def on_range(args: list[str]) -> None:
        if len(args) != 1:
            print(f"{LINE_PREFIX}Usage: /range 1h|24h|7d|30d")
            return
        try:
            await view.set_range(args[0].lower())
        except ValueError as ex:
            print(f"{LINE_PREFIX}{ex}")
            return
        await on_show([])

    async def on_bucket(args: list[str]) -> None:
        if not args:
            print(f"{LINE_PREFIX}Buckets: {', '.join(view.bucket_labels) or '(none reported)'}")
            return
        await view.set_bucket(" ".join(args))
        await on_show([])

    async def on_mode(args: list[str]) -> None:
        if len(args) != 1:
            print(f"{LINE_PREFIX}Usage: /mode hosts|projects|sessions")
            return
        try:
            await view.set_mode(args[0].lower())  # type: ignore[arg-type]
        except ValueError as ex:
            print(f"{LINE_PREFIX}{ex}")
            return
        await on_show([])

    async def on_select(args: list[str]) -> None:
        rows = view.breakdown.page_rows
        index, error = parse_row_index(args, len(rows), line_prefix=LINE_PREFIX)
        if error:
            print(error)
            return
        assert index is not None
        selection = await view.select_row(rows[index])
        if selection is None:
            print(f"{LINE_PREFIX}Selection cleared")
        else:
            print(f"{LINE_PREFIX}Selected {selection.kind} {selection.key}")
        await on_show([])

    async def on_clear(_args: list[str]) -> None:
        await view.clear_selection()
        print(f"{LINE_PREFIX}Selection cleared")

    async def on_page(args: list[str]) -> None:
        direction = args[0].lower() if args else "next"
        if direction in ("next", "n"):
            view.breakdown.next_page()
        elif direction in ("prev", "previous", "p"):
            view.breakdown.previous_page()
        else:
            print(f"{LINE_PREFIX}Usage: /page next|prev")
            return
        await on_show([])

    async def on_delete(_args: list[str]) -> None:
        selection = view.selection
        try:
            outcome = await view.request_delete()
        except QueryError as ex:
            print(f"{LINE_PREFIX}Delete failed: {ex}")
            return
        if outcome == "ignored":
            print(f"{LINE_PREFIX}Nothing selected")
        elif outcome == "confirm":
            print(f"{LINE_PREFIX}Run /delete again to confirm")
        elif selection is not None:
            print(f"{LINE_PREFIX}Deleted {selection.kind} {selection.key}")

    async def on_refresh(_args: list[str]) -> None:
        await view.refresh()
        await on_show([])

    def on_unknown(command: str) -> None:
        print(f"{LINE_PREFIX}Unknown command: {command} (try /help)")

    return CommandRouter(
        handlers={
            "help": on_help,
            "show": on_show,
            "range": on_range,
            "bucket": on_bucket,
            "mode": on_mode,
            "select": on_select,
            "clear": on_clear,
            "page": on_page,
            "delete": on_delete,
            "refresh": on_refresh,
        },
        on_unknown=on_unknown,
    )


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    client = HttpQueryClient(app.query_base_url, api_token=env.api_token, timeout_seconds=app.query_timeout_seconds)
    bus = NotificationBus()
    view = AnalyticsController(
        client,
        bus,
        range_name=app.default_range,  # type: ignore[arg-type]
        debounce_seconds=app.refresh_debounce_seconds,
        confirm_timeout_seconds=app.confirm_timeout_seconds,
    )
    router = build_router(view)

    print("usage-analytics (type 'exit' to quit, '/help' for commands)")
    print(f"Backend: {app.query_base_url}")
    if log_descriptions:
        print(f"Logging: {', '.join(log_descriptions)}")
    print()

    try:
        await view.start()
        _print_lines(format_view(view, line_prefix=LINE_PREFIX))
        while True:
            try:
                user_input = await asyncio.to_thread(input, "you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                if not await router.try_handle(trimmed):
                    print(f"{LINE_PREFIX}Commands start with '/' (try /help)")
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        view.close()
        await client.close()


if __name__ == "__main__":
    asyncio.run(main())
