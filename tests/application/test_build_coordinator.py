"""Tests for BuildCoordinator batching and the closure cache."""

import asyncio

import pytest

from fakes import FakeBuilder, make_host
from nixmorph.application.orchestration.build_coordinator import (
    BuildCoordinator,
    closure_key,
)
from nixmorph.domain.errors import BuildError, LinkResolutionError
from nixmorph.domain.services.keyed_store import KeyedStore


class TestBuildCoordinator:
    @pytest.mark.asyncio
    async def test_one_build_serves_the_whole_batch(self, tmp_path):
        builder = FakeBuilder(tmp_path, delay=0.02)
        coordinator = BuildCoordinator(builder)
        hosts = [make_host("a"), make_host("b"), make_host("c")]
        coordinator.add_batch(hosts)

        closures = await asyncio.gather(*(coordinator.closure_for(h) for h in hosts))

        assert builder.calls == [["a", "b", "c"]]
        assert closures == [builder.closure_path(h.name) for h in hosts]
        assert coordinator.closure("b") == builder.closure_path("b")

    @pytest.mark.asyncio
    async def test_build_failure_fails_every_host_of_the_batch(self, tmp_path):
        builder = FakeBuilder(tmp_path, error=BuildError("nix-build exited with status 1"))
        coordinator = BuildCoordinator(builder)
        hosts = [make_host("a"), make_host("b")]
        coordinator.add_batch(hosts)

        results = await asyncio.gather(
            *(coordinator.closure_for(h) for h in hosts), return_exceptions=True
        )

        assert all(isinstance(r, BuildError) for r in results)
        assert len(builder.calls) == 1
        assert coordinator.closure("a") is None

    @pytest.mark.asyncio
    async def test_os_error_from_builder_becomes_build_error(self, tmp_path):
        coordinator = BuildCoordinator(FakeBuilder(tmp_path, error=OSError("no nix-build")))
        with pytest.raises(BuildError, match="no nix-build"):
            await coordinator.closure_for(make_host("a"))

    @pytest.mark.asyncio
    async def test_missing_link_fails_only_that_host(self, tmp_path):
        builder = FakeBuilder(tmp_path, missing=["b"])
        coordinator = BuildCoordinator(builder)
        a, b = make_host("a"), make_host("b")
        coordinator.add_batch([a, b])

        assert await coordinator.closure_for(a) == builder.closure_path("a")
        with pytest.raises(LinkResolutionError) as exc_info:
            await coordinator.closure_for(b)
        assert exc_info.value.link.endswith("/b")
        assert len(builder.calls) == 1

    @pytest.mark.asyncio
    async def test_cached_closure_skips_the_build(self, tmp_path):
        builder = FakeBuilder(tmp_path)
        cache = KeyedStore("closures")
        cache.update(closure_key("a"), "/nix/store/abc-nixos-system-a")
        coordinator = BuildCoordinator(builder, cache)

        assert await coordinator.closure_for(make_host("a")) == "/nix/store/abc-nixos-system-a"
        assert builder.calls == []

    @pytest.mark.asyncio
    async def test_unbatched_host_gets_its_own_build(self, tmp_path):
        builder = FakeBuilder(tmp_path)
        coordinator = BuildCoordinator(builder)
        coordinator.add_batch([make_host("a")])

        await coordinator.closure_for(make_host("z"))
        assert builder.calls == [["z"]]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_abort_the_shared_build(self, tmp_path):
        builder = FakeBuilder(tmp_path, delay=0.05)
        coordinator = BuildCoordinator(builder)
        a, b = make_host("a"), make_host("b")
        coordinator.add_batch([a, b])

        waiter_a = asyncio.create_task(coordinator.closure_for(a))
        waiter_b = asyncio.create_task(coordinator.closure_for(b))
        await asyncio.sleep(0.01)
        waiter_a.cancel()

        assert await waiter_b == builder.closure_path("b")
        assert waiter_a.cancelled()
        assert coordinator.closure("a") == builder.closure_path("a")

    @pytest.mark.asyncio
    async def test_build_all(self, tmp_path):
        builder = FakeBuilder(tmp_path)
        coordinator = BuildCoordinator(builder)
        coordinator.add_batch([make_host("a")])
        coordinator.add_batch([make_host("b"), make_host("a")])

        closures = await coordinator.build_all()

        assert sorted(builder.calls) == [["a"], ["b"]]
        assert closures == {
            "a": builder.closure_path("a"),
            "b": builder.closure_path("b"),
        }

    @pytest.mark.asyncio
    async def test_close_cancels_unclaimed_builds(self, tmp_path):
        builder = FakeBuilder(tmp_path, delay=10)
        coordinator = BuildCoordinator(builder)
        waiter = asyncio.create_task(coordinator.closure_for(make_host("a")))
        await asyncio.sleep(0.01)
        waiter.cancel()

        await asyncio.wait_for(coordinator.close(), 1)
        assert coordinator.closure("a") is None
