from __future__ import annotations

import asyncio
from collections import deque
from pathlib import Path
from typing import Awaitable, Callable

from .generator import run_git

DEFAULT_FETCH_LIMIT = 3

FetchFn = Callable[[str], Awaitable[str]]


class FileContentLoader:
    """Shared full-file fetcher for every open file view.

    At most ``limit`` fetches run at once; the rest wait in FIFO order.
    Concurrent requests for one path share a single fetch and successful
    results are cached. Failures are not cached, so a later request retries.
    """

    def __init__(self, fetch: FetchFn, limit: int = DEFAULT_FETCH_LIMIT) -> None:
        if limit < 1:
            raise ValueError("fetch limit must be >= 1")
        self.limit = limit
        self.started: list[str] = []
        self.max_active = 0
        self._fetch = fetch
        self._cache: dict[str, str] = {}
        self._pending: dict[str, asyncio.Future[str]] = {}
        self._queue: deque[str] = deque()
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    def cached(self, path: str) -> str | None:
        return self._cache.get(path)

    async def load(self, path: str) -> str:
        if path in self._cache:
            return self._cache[path]
        future = self._pending.get(path)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._pending[path] = future
            self._queue.append(path)
            self._pump()
        return await asyncio.shield(future)

    def _pump(self) -> None:
        while self._active < self.limit and self._queue:
            path = self._queue.popleft()
            self._active += 1
            self.max_active = max(self.max_active, self._active)
            self.started.append(path)
            asyncio.get_running_loop().create_task(self._run(path))

    async def _run(self, path: str) -> None:
        future = self._pending[path]
        try:
            content = await self._fetch(path)
        except Exception as error:  # noqa: BLE001
            if not future.done():
                future.set_exception(error)
        else:
            self._cache[path] = content
            if not future.done():
                future.set_result(content)
        finally:
            self._active -= 1
            self._pending.pop(path, None)
            self._pump()


class RepoFileSource:
    """Reads files from a working tree, refusing paths outside of it."""

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def resolve(self, path: str) -> Path:
        candidate = (self.root / path).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as error:
            raise RuntimeError(f"Path escapes repository root: {path}") from error
        return candidate

    def read(self, path: str) -> str:
        target = self.resolve(path)
        try:
            return target.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError as error:
            raise RuntimeError(f"File not found: {path}") from error

    async def __call__(self, path: str) -> str:
        return await asyncio.to_thread(self.read, path)


class GitFileSource:
    """Reads file content at a fixed ref with ``git show``."""

    def __init__(self, repo: Path, ref: str = "HEAD") -> None:
        self.repo = repo
        self.ref = ref

    def read(self, path: str) -> str:
        return run_git(self.repo, ["show", f"{self.ref}:{path}"])

    async def __call__(self, path: str) -> str:
        return await asyncio.to_thread(self.read, path)
