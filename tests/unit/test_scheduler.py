"""
Unit tests for the polling Scheduler.

The scheduler is driven against in-memory targets configuration, working
trees and executor, with the visiting order fixed where a test needs it.
"""

import asyncio
import random

import pytest

from conftest import FakeConfigLoader, FakeExecutor, FakeNotifier, FakeTree, FakeVCS, fixed_order
from fleet_common.errors import ConfigurationError
from fleet_controller.registry import JobRegistry
from fleet_controller.scheduler import Scheduler


def stale(branch: str = "master") -> FakeTree:
    return FakeTree(branch=branch, local="1111111111", remote="2222222222")


def make_scheduler(trees, targets, max_jobs=2, shuffle=None, executor=None):
    executor = executor or FakeExecutor()
    registry = JobRegistry(executor, FakeNotifier(), max_jobs=max_jobs)
    vcs = FakeVCS(trees)
    loader = FakeConfigLoader(targets)
    scheduler = Scheduler(
        registry=registry,
        vcs=vcs,
        config_loader=loader,
        poll_interval=0.05,
        shuffle=shuffle or (lambda targets: None),
    )
    return scheduler, executor, vcs, loader


class TestRunCycle:
    """Test suite for Scheduler.run_cycle."""

    @pytest.mark.asyncio
    async def test_only_active_stale_targets_on_normal_branches_are_built(self):
        trees = {
            "A": stale(),
            "B": stale(),
            "C": stale(branch="testmerge-x"),
            "D": FakeTree(),
        }
        targets = {"A": True, "B": False, "C": True, "D": True}
        scheduler, executor, vcs, _ = make_scheduler(trees, targets, max_jobs=4)

        submitted = await scheduler.run_cycle()

        assert submitted == ["A"]
        assert executor.started == ["A"]
        # Inactive and reserved-branch targets are never fetched
        assert "B" not in vcs.fetched
        assert "C" not in vcs.fetched
        assert "D" in vcs.fetched

    @pytest.mark.asyncio
    async def test_cycle_stops_at_capacity(self):
        trees = {name: stale() for name in ("s1", "s2", "s3", "s4")}
        targets = {name: True for name in trees}
        scheduler, executor, vcs, _ = make_scheduler(
            trees, targets, max_jobs=2, shuffle=fixed_order("s3", "s1", "s4", "s2")
        )

        submitted = await scheduler.run_cycle()

        assert submitted == ["s3", "s1"]
        assert executor.started == ["s3", "s1"]
        assert vcs.fetched == ["s3", "s1"]

    @pytest.mark.asyncio
    async def test_unvisited_targets_are_built_next_cycle(self):
        trees = {name: stale() for name in ("s1", "s2", "s3", "s4")}
        targets = {name: True for name in trees}
        scheduler, executor, _, _ = make_scheduler(
            trees, targets, max_jobs=2, shuffle=fixed_order("s3", "s1", "s4", "s2")
        )
        await scheduler.run_cycle()

        for name in ("s3", "s1"):
            trees[name].local = trees[name].remote
            executor.finish(name)
        await asyncio.sleep(0)

        submitted = await scheduler.run_cycle()

        assert submitted == ["s4", "s2"]
        assert executor.started == ["s3", "s1", "s4", "s2"]

    @pytest.mark.asyncio
    async def test_no_work_when_at_capacity(self):
        trees = {"A": stale(), "B": stale()}
        scheduler, _, vcs, loader = make_scheduler(
            trees, {"A": True, "B": True}, max_jobs=1
        )
        scheduler.registry.build("B")

        submitted = await scheduler.run_cycle()

        assert submitted == []
        assert loader.loads == 0
        assert vcs.fetched == []

    @pytest.mark.asyncio
    async def test_configuration_is_read_every_cycle(self):
        trees = {"A": stale()}
        scheduler, executor, _, loader = make_scheduler(trees, {"A": False})

        assert await scheduler.run_cycle() == []

        loader.targets["A"] = True
        assert await scheduler.run_cycle() == ["A"]
        assert loader.loads == 2

    @pytest.mark.asyncio
    async def test_vcs_error_skips_only_that_target(self):
        trees = {"A": stale(), "B": stale(), "C": stale()}
        trees["B"].fetch_error = True
        scheduler, executor, _, _ = make_scheduler(
            trees,
            {"A": True, "B": True, "C": True},
            max_jobs=3,
            shuffle=fixed_order("B", "A", "C"),
        )

        submitted = await scheduler.run_cycle()

        assert submitted == ["A", "C"]

    @pytest.mark.asyncio
    async def test_missing_working_tree_is_skipped(self):
        trees = {"A": stale()}
        scheduler, executor, _, _ = make_scheduler(
            trees, {"ghost": True, "A": True}, shuffle=fixed_order("ghost", "A")
        )

        submitted = await scheduler.run_cycle()

        assert submitted == ["A"]

    @pytest.mark.asyncio
    async def test_unreadable_configuration_skips_cycle(self):
        scheduler, executor, _, loader = make_scheduler({}, {})
        loader.error = ConfigurationError("no such file")

        assert await scheduler.run_cycle() == []
        assert executor.started == []

    @pytest.mark.asyncio
    async def test_stale_building_target_is_queued(self):
        trees = {"A": stale()}
        scheduler, executor, _, _ = make_scheduler(trees, {"A": True})
        await scheduler.run_cycle()

        submitted = await scheduler.run_cycle()

        assert submitted == ["A"]
        assert executor.started == ["A"]
        assert scheduler.registry.is_queued("A")

    @pytest.mark.asyncio
    async def test_builds_do_not_refetch(self):
        trees = {"A": stale()}
        scheduler, executor, _, _ = make_scheduler(trees, {"A": True})

        await scheduler.run_cycle()

        assert executor.calls[0][1].fetch_repo is False

    @pytest.mark.asyncio
    async def test_held_target_is_skipped(self):
        trees = {"A": stale()}
        scheduler, executor, vcs, _ = make_scheduler(trees, {"A": True})

        with scheduler.registry.hold("A"):
            submitted = await scheduler.run_cycle()

        assert submitted == []
        assert vcs.fetched == []

    @pytest.mark.asyncio
    async def test_overlapping_cycles_are_skipped(self):
        release = asyncio.Event()

        class SlowVCS(FakeVCS):
            async def fetch(self, target_id):
                await release.wait()
                await super().fetch(target_id)

        executor = FakeExecutor()
        registry = JobRegistry(executor, FakeNotifier())
        scheduler = Scheduler(
            registry=registry,
            vcs=SlowVCS({"A": stale()}),
            config_loader=FakeConfigLoader({"A": True}),
        )

        first = asyncio.create_task(scheduler.run_cycle())
        await asyncio.sleep(0)
        second = await scheduler.run_cycle()
        release.set()

        assert second == []
        assert await first == ["A"]

    @pytest.mark.asyncio
    async def test_every_stale_target_is_eventually_visited(self):
        names = ["s1", "s2", "s3", "s4"]
        trees = {name: stale() for name in names}
        scheduler, executor, _, _ = make_scheduler(
            trees,
            {name: True for name in names},
            max_jobs=1,
            shuffle=random.Random(7).shuffle,
        )

        built = set()
        for _ in range(60):
            submitted = await scheduler.run_cycle()
            built.update(submitted)
            for name in submitted:
                executor.finish(name)
            await asyncio.sleep(0)

        assert built == set(names)


class TestPollingLoop:
    """Test suite for the background polling loop."""

    @pytest.mark.asyncio
    async def test_start_stop(self):
        scheduler, executor, _, _ = make_scheduler({"A": stale()}, {"A": True})

        await scheduler.start()
        assert scheduler.running

        await asyncio.sleep(0.1)

        await scheduler.stop()
        assert not scheduler.running
        assert executor.started == ["A"]

    @pytest.mark.asyncio
    async def test_loop_survives_cycle_errors(self):
        scheduler, _, _, loader = make_scheduler({}, {})
        loader.error = RuntimeError("unexpected")

        await scheduler.start()
        await asyncio.sleep(0.15)

        assert scheduler.running
        assert loader.loads >= 2
        await scheduler.stop()
