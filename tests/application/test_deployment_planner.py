"""Tests for DeploymentPlanner selection, fan-out and reporting."""

import pytest

from fakes import FakeBuilder, FakeRemote, make_constraint, make_deployment, make_host
from nixmorph.application.dtos.deployment_dtos import HostFilter
from nixmorph.application.orchestration.deployment_planner import DeploymentPlanner
from nixmorph.application.orchestration.host_pipeline import PipelineOptions
from nixmorph.domain.errors import BuildError, InvalidConstraintError, UnknownHostError
from nixmorph.domain.events.host_events import DeploymentFinishedEvent, HostFailedEvent
from nixmorph.infrastructure.adapters.health_checks import HealthCheckFactory


def planner_for(transfer, remote, event_bus=None):
    return DeploymentPlanner(transfer, remote, HealthCheckFactory(remote), event_bus)


def rack_hosts(count, rack="1"):
    return [make_host(f"r{rack}-{i}", labels={"rack": rack}) for i in range(count)]


class TestSelection:
    def test_select_orders_and_windows(self):
        deployment = make_deployment(
            [make_host("a"), make_host("b", tags=("canary",)), make_host("c")],
            ordering=("canary",),
        )
        hosts = DeploymentPlanner.select(deployment, HostFilter(limit=2))
        assert [h.name for h in hosts] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_unknown_host_rejected_before_building(self, builder, transfer, remote):
        deployment = make_deployment([make_host("a")])

        with pytest.raises(UnknownHostError):
            await planner_for(transfer, remote).plan(
                deployment, HostFilter(names=("nope",)), PipelineOptions(), builder
            )
        assert builder.calls == []

    @pytest.mark.asyncio
    async def test_invalid_constraint_rejected_before_building(self, builder, transfer, remote):
        deployment = make_deployment(
            [make_host("a", labels={"rack": "1"})],
            [make_constraint("rack", max_unavailable=0)],
        )

        with pytest.raises(InvalidConstraintError):
            await planner_for(transfer, remote).plan(
                deployment, HostFilter(), PipelineOptions(), builder
            )
        assert builder.calls == []

    @pytest.mark.asyncio
    async def test_empty_selection(self, builder, transfer, remote):
        deployment = make_deployment([make_host("a")])

        report = await planner_for(transfer, remote).plan(
            deployment, HostFilter(tags=("nothing",)), PipelineOptions(), builder
        )
        assert report.hosts == ()
        assert report.success
        assert builder.calls == []


class TestRollout:
    @pytest.mark.asyncio
    async def test_all_hosts_succeed(self, builder, transfer, remote, event_bus):
        hosts = [make_host("a"), make_host("b"), make_host("builder", build_only=True)]
        deployment = make_deployment(hosts)

        report = await planner_for(transfer, remote, event_bus).plan(
            deployment, HostFilter(), PipelineOptions(), builder
        )

        assert report.success
        assert [r.host for r in report.hosts] == ["a", "b", "builder"]
        assert builder.calls == [["a", "b", "builder"]]
        assert sorted(remote.activated_hosts) == ["a", "b"]
        assert report.get("a").closure == builder.closure_path("a")
        assert report.get("builder").stage == "done"
        assert transfer.pushed_hosts.count("builder") == 0

        finished = event_bus.of_type(DeploymentFinishedEvent)
        assert len(finished) == 1
        assert finished[0].success
        assert finished[0].aggregate_id == "test"

    @pytest.mark.asyncio
    async def test_constraint_bounds_activations_per_label_value(self, builder, transfer):
        remote = FakeRemote(activation_delay=0.02)
        deployment = make_deployment(
            rack_hosts(3, "1") + rack_hosts(3, "2"),
            [make_constraint("rack", "*", max_unavailable=1)],
        )

        report = await planner_for(transfer, remote).plan(
            deployment, HostFilter(), PipelineOptions(), builder
        )

        assert report.success
        assert remote.max_active <= 2
        for snapshot in remote.snapshots:
            assert sum(1 for name in snapshot if name.startswith("r1-")) <= 1
            assert sum(1 for name in snapshot if name.startswith("r2-")) <= 1

    @pytest.mark.asyncio
    async def test_parallel_bounds_hosts_in_flight(self, builder, transfer):
        remote = FakeRemote(activation_delay=0.02)
        deployment = make_deployment([make_host(f"h{i}") for i in range(5)])

        report = await planner_for(transfer, remote).plan(
            deployment, HostFilter(), PipelineOptions(), builder, parallel=2
        )

        assert report.success
        assert remote.max_active <= 2

    @pytest.mark.asyncio
    async def test_sequential_keeps_execution_order(self, builder, transfer, remote):
        deployment = make_deployment(
            [make_host("a"), make_host("b", tags=("first",)), make_host("c")],
            ordering=("first",),
        )

        await planner_for(transfer, remote).plan(
            deployment, HostFilter(), PipelineOptions(), builder, parallel=1
        )
        assert remote.activated_hosts == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self, builder, transfer, remote, event_bus):
        remote.failing_activations["b"] = "activation script failed"
        deployment = make_deployment([make_host("a"), make_host("b"), make_host("c")])

        report = await planner_for(transfer, remote, event_bus).plan(
            deployment, HostFilter(), PipelineOptions(), builder
        )

        assert not report.success
        assert report.failed == ["b"]
        assert report.succeeded == ["a", "c"]
        result = report.get("b")
        assert result.failed_step == "activate"
        assert result.stage == "pre-checked"
        assert result.error == "activation script failed"
        assert event_bus.of_type(DeploymentFinishedEvent)[0].failed == ("b",)

    @pytest.mark.asyncio
    async def test_unexpected_error_is_published_as_internal_failure(
        self, builder, transfer, event_bus
    ):
        class CrashingRemote(FakeRemote):
            async def activate(self, host, closure, action):
                if host.name == "b":
                    raise RuntimeError("unexpected reply")
                await super().activate(host, closure, action)

        deployment = make_deployment([make_host("a"), make_host("b")])

        report = await planner_for(transfer, CrashingRemote(), event_bus).plan(
            deployment, HostFilter(), PipelineOptions(), builder
        )

        assert report.succeeded == ["a"]
        assert report.get("b").failed_step == "internal"
        assert report.get("b").error == "unexpected reply"
        failures = event_bus.of_type(HostFailedEvent)
        assert [(e.aggregate_id, e.stage) for e in failures] == [("b", "internal")]
        assert "unexpected reply" in failures[0].error_message

    @pytest.mark.asyncio
    async def test_fail_fast_cancels_remaining_hosts(self, builder, transfer):
        remote = FakeRemote(activation_delay=0.05)
        remote.failing_activations["a"] = "boom"
        deployment = make_deployment([make_host("a"), make_host("b"), make_host("c")])

        report = await planner_for(transfer, remote).plan(
            deployment, HostFilter(), PipelineOptions(), builder,
            parallel=1, fail_fast=True,
        )

        assert report.failed == ["a", "b", "c"]
        assert remote.activated_hosts == []
        assert report.get("a").error == "boom"
        assert report.get("b").error == "cancelled"
        assert report.get("c").failed_step == "cancelled"

    @pytest.mark.asyncio
    async def test_build_failure_fails_every_host(self, tmp_path, transfer, remote):
        builder = FakeBuilder(tmp_path, error=BuildError("nix-build exited with status 1"))
        deployment = make_deployment([make_host("a"), make_host("b")])

        report = await planner_for(transfer, remote).plan(
            deployment, HostFilter(), PipelineOptions(), builder
        )

        assert report.failed == ["a", "b"]
        assert {r.failed_step for r in report.hosts} == {"build"}
        assert len(builder.calls) == 1
        assert transfer.pushes == []
        assert report.get("a").closure is None
