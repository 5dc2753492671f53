import asyncio
from collections.abc import Callable, Iterator
import inspect
from pathlib import Path
import sys
from typing import Any

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from manim_studio.integrations.manim_client import ManimHttpClient  # noqa: E402

_CONFIG_ENV_VARS = (
    "MANIM_API_URL",
    "MANIM_API_TIMEOUT_MS",
    "MANIM_POLL_INTERVAL_MS",
    "MANIM_MAX_PROMPT_LENGTH",
    "MANIM_DEFAULT_QUALITY",
    "MANIM_DELETE_CONCURRENCY",
    "MANIM_HEALTH_TIMEOUT_MS",
    "LOG_LEVEL",
)


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None
    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None
    fixtureinfo = getattr(pyfuncitem, "_fixtureinfo", None)
    if fixtureinfo is None:
        return None
    kwargs = {name: pyfuncitem.funcargs[name] for name in fixtureinfo.argnames}
    asyncio.run(test_func(**kwargs))
    return True


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


class RecordingBackend:
    """Fake rendering backend for ``httpx.MockTransport``.

    Routes are matched on ``(method, path)``; a route value may be a response,
    a list of responses served in order (the last one repeats) or a callable
    taking the request.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Any] = {}
        self._cursor: dict[tuple[str, str], int] = {}

    def route(self, method: str, path: str, response: Any) -> None:
        self._routes[(method.upper(), path)] = response

    def paths(self, method: str | None = None) -> list[str]:
        return [
            request.url.path
            for request in self.requests
            if method is None or request.method == method.upper()
        ]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        target = self._routes.get(key)
        if target is None:
            return httpx.Response(404, json={"detail": f"no route for {key}"})
        if isinstance(target, list):
            index = min(self._cursor.get(key, 0), len(target) - 1)
            self._cursor[key] = index + 1
            target = target[index]
        if callable(target):
            target = target(request)
            if inspect.isawaitable(target):
                target = await target
        return target


@pytest.fixture()
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture()
def make_client(backend: RecordingBackend) -> Callable[..., ManimHttpClient]:
    def _factory(**overrides: Any) -> ManimHttpClient:
        params: dict[str, Any] = {
            "base_url": "http://manim.test",
            "timeout_ms": 2_000,
            "transport": httpx.MockTransport(backend),
        }
        params.update(overrides)
        return ManimHttpClient(**params)

    return _factory

