from __future__ import annotations

from collections.abc import Awaitable, Callable

from usage_analytics.commands.view_command import COMMAND_NAMES, parse_command


class CommandRouter:
    def __init__(
        self,
        *,
        handlers: dict[str, Callable[[list[str]], Awaitable[None]]],
        on_unknown: Callable[[str], None],
    ) -> None:
        missing = [name for name in COMMAND_NAMES if name not in handlers]
        if missing:
            raise ValueError(f"Missing command handlers: {', '.join(missing)}")
        self._handlers = handlers
        self._on_unknown = on_unknown

    async def try_handle(self, user_input: str) -> bool:
        trimmed = user_input.strip()
        if not trimmed.startswith("/"):
            return False

        name, args = parse_command(trimmed)
        handler = self._handlers.get(name)
        if handler is None:
            self._on_unknown(trimmed)
            return True

        await handler(args)
        return True
