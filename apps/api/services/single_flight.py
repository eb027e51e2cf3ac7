"""Keyed single-flight coordination for concurrent identical work."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict


class SingleFlight:
    """Collapse concurrent calls for the same key into one execution.

    The first caller for a key runs the factory; callers arriving while it is
    in flight await the same future and receive its result or exception. The
    key is released as soon as the execution settles.
    """

    def __init__(self) -> None:
        self._inflight: Dict[str, asyncio.Future] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        existing = self._inflight.get(key)
        if existing is not None:
            return await asyncio.shield(existing)

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            result = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # followers may not exist; consume so asyncio does not warn
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]
