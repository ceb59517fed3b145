"""Shared fixtures for integration tests.

Wires the real queue, controller and reconciler to the in-memory store so the
whole loop can be exercised without a Kubernetes cluster.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest

from node_label_inheritor.controller.controller import LabelInheritanceController
from node_label_inheritor.controller.queue import WorkQueue
from node_label_inheritor.reconciler import Reconciler
from tests.fakes import FakeClusterStore


class Loop:
    """A running controller plus helpers to wait for it to settle."""

    def __init__(self, store: FakeClusterStore, queue: WorkQueue, controller: LabelInheritanceController) -> None:
        self.store = store
        self.queue = queue
        self.controller = controller

    async def wait_for(self, condition: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = asyncio.get_running_loop().time() + timeout
        while not condition():
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not reached before timeout")
            await asyncio.sleep(0.005)


@pytest.fixture
def store() -> FakeClusterStore:
    fake = FakeClusterStore()
    fake.add_node("node-a", {"zone": "us-east-1a", "rack": "7"})
    fake.add_node("node-b", {"zone": "us-east-1b", "rack": "3"})
    return fake


@pytest.fixture
async def control_loop(store: FakeClusterStore) -> AsyncIterator[Loop]:
    queue = WorkQueue(base_delay=0.005, max_delay=0.05)
    controller = LabelInheritanceController(Reconciler(store), queue, workers=2, reconcile_timeout=1.0)
    await controller.start()
    try:
        yield Loop(store, queue, controller)
    finally:
        await controller.stop()
