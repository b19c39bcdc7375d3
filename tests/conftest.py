from __future__ import annotations

import io
import os
import pathlib
import stat
import sys

import pytest

FIXTURES_DIR = pathlib.Path(__file__).parent / "fixtures"
FAKE_NU = str(FIXTURES_DIR / "fake_nu.py")
SRC_DIR = str(pathlib.Path(__file__).parent.parent / "src")


@pytest.fixture(scope="session")
def fake_nu_path(tmp_path_factory) -> str:
    """Executable that behaves like ``nu -c`` but runs Python."""
    if sys.platform == "win32":
        pytest.skip("fake nu wrapper needs a POSIX shell")
    path = tmp_path_factory.mktemp("bin") / "nu"
    path.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_NU}" "$@"\n')
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def nu_config_files(tmp_path) -> tuple[str, str]:
    config = tmp_path / "config.nu"
    env_config = tmp_path / "env.nu"
    config.write_text("$env.config = {}\n")
    env_config.write_text("$env.FOO = 'bar'\n")
    return str(config), str(env_config)


@pytest.fixture
def server_env() -> dict[str, str]:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (SRC_DIR, env.get("PYTHONPATH")) if p)
    return env


class FakeRunner:
    """Records the argv/timeout it was called with and returns a canned outcome."""

    def __init__(self, outcome=None, error: Exception | None = None) -> None:
        self.outcome = outcome
        self.error = error
        self.calls: list[tuple[list[str], float]] = []

    async def __call__(self, argv: list[str], timeout: float):
        self.calls.append((argv, timeout))
        if self.error is not None:
            raise self.error
        return self.outcome


class MemoryWriter:
    """Stand-in for the stdout StreamWriter that keeps what was written.

    With ``fail_after`` set, every drain after that many frames fails the way
    a closed pipe does.
    """

    def __init__(self, fail_after: int | None = None) -> None:
        self._buffer = io.BytesIO()
        self._fail_after = fail_after
        self.drains = 0

    def write(self, data: bytes) -> None:
        self._buffer.write(data)

    async def drain(self) -> None:
        if self._fail_after is not None and self.drains >= self._fail_after:
            raise ConnectionResetError("Connection lost")
        self.drains += 1

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()
