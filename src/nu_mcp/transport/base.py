from __future__ import annotations

import abc
import sys

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing import TypeVar

    Self = TypeVar("Self", bound="BaseTransport")


class BaseTransport(abc.ABC):
    _running: bool = False

    @property
    def is_running(self) -> bool:
        return self._running

    @abc.abstractmethod
    async def start(self) -> None: ...

    @abc.abstractmethod
    async def send(self, message: dict) -> None:
        """Write one message as a single frame. Raises ConnectionError."""

    @abc.abstractmethod
    async def read_line(self) -> str | None:
        """Return the next frame without its newline, or None at end of stream.

        Raises ValueError for a frame that cannot be read (too long) and
        ConnectionError when the stream itself is broken.
        """

    @abc.abstractmethod
    async def stop(self) -> None: ...

    async def __aenter__(self) -> Self:  # type: ignore[return-value]
        await self.start()
        return self  # type: ignore[return-value]

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        await self.stop()
