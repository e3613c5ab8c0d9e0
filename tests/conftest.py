import asyncio
from typing import TYPE_CHECKING, AsyncGenerator, Callable, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

if TYPE_CHECKING:
    from app.core.cache import CacheService

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.exceptions import OverrideStoreUnavailableError
from app.core.ruleset_cache import RulesetCache
from app.main import app
from app.schemas.common import OverrideKind, ScopeLayer
from app.schemas.override import RawOverrideRecord, RulesetScope


class FakeClock:
    """Manually advanced replacement for ``time.monotonic``."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOverrideRepository:
    """In-memory stand-in for ``OverrideRepository.load_override_records``.

    Records are registered per ``(layer, scope_key)``.  ``fail`` makes every
    load raise ``OverrideStoreUnavailableError`` and ``error`` makes it raise
    that exception instead; ``delay`` makes every load sleep first so
    timeouts can be exercised.  ``on_load`` runs on every load call.
    """

    def __init__(self) -> None:
        self.records: Dict[Tuple[ScopeLayer, Optional[str]], List[RawOverrideRecord]] = {}
        self.calls: List[Tuple[ScopeLayer, Optional[str], Optional[str]]] = []
        self.fail = False
        self.delay = 0.0
        self.error: Optional[Exception] = None
        self.on_load: Optional[Callable[[], None]] = None

    def add(
        self,
        layer: ScopeLayer,
        scope_key: Optional[str],
        kind: OverrideKind,
        payload: dict,
        version: int = 1,
    ) -> None:
        self.records.setdefault((layer, scope_key), []).append(
            RawOverrideRecord(
                override_id=f"{layer.value}-{len(self.records)}",
                kind=kind.value,
                scope_layer=layer,
                scope_key=scope_key,
                payload=payload,
                version=version,
            )
        )

    async def load_override_records(
        self, scope: RulesetScope, kind: Optional[str] = None
    ) -> List[RawOverrideRecord]:
        self.calls.append((scope.layer, scope.scope_key, kind))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.on_load is not None:
            self.on_load()
        if self.error is not None:
            raise self.error
        if self.fail:
            raise OverrideStoreUnavailableError("database is down")
        return [
            record
            for record in self.records.get((scope.layer, scope.scope_key), [])
            if kind is None or record.kind == kind
        ]

    @property
    def loaded_layers(self) -> List[ScopeLayer]:
        return list(dict.fromkeys(layer for layer, _, _ in self.calls))


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
    app.state.ruleset_cache.clear()


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Return an ``AsyncMock`` that behaves like ``redis.asyncio.Redis``."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.incr = AsyncMock(return_value=1)
    redis.ping = AsyncMock()
    return redis


@pytest.fixture
def mock_cache(mock_redis) -> "CacheService":
    """Return a ``CacheService`` backed by the mock Redis client."""
    from app.core.cache import CacheService

    return CacheService(redis_client=mock_redis)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ruleset_cache(clock: FakeClock) -> RulesetCache:
    """Isolated cache instance per test, driven by the fake clock."""
    return RulesetCache(ttl_seconds=300, max_entries=100, clock=clock)


@pytest.fixture
def fake_repo() -> FakeOverrideRepository:
    return FakeOverrideRepository()


@pytest.fixture
def make_record():
    """Factory for raw override records."""

    def _make(
        kind,
        payload,
        layer: ScopeLayer = ScopeLayer.base,
        scope_key: Optional[str] = None,
        version: int = 1,
        override_id: Optional[str] = None,
    ) -> RawOverrideRecord:
        return RawOverrideRecord(
            override_id=override_id,
            kind=kind.value if isinstance(kind, OverrideKind) else kind,
            scope_layer=layer,
            scope_key=scope_key,
            payload=payload,
            version=version,
        )

    return _make
