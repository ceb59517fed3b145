"""Tests for PodWatcher / NodeWatcher enqueue decisions and the list/watch plumbing."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from node_label_inheritor.controller import watcher as watcher_module
from node_label_inheritor.controller.queue import WorkQueue
from node_label_inheritor.controller.watcher import NodeWatcher, PodWatcher, WatchExpiredError
from node_label_inheritor.models.objects import ObjectKey
from tests.fakes import make_node_raw, make_pod_raw


def _make_v1() -> MagicMock:
    v1 = MagicMock()
    v1.api_client.sanitize_for_serialization = MagicMock(side_effect=lambda obj: obj)
    return v1


def _drain(queue: WorkQueue) -> set[Any]:
    keys = set(queue._queue)
    queue._queue.clear()
    queue._dirty.clear()
    return keys


class _FakeStream:
    """Async context manager + iterator standing in for Watch().stream(...)."""

    def __init__(self, events: list[dict[str, Any]]) -> None:
        self._events = list(events)

    async def __aenter__(self) -> _FakeStream:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    def __aiter__(self) -> _FakeStream:
        return self

    async def __anext__(self) -> dict[str, Any]:
        if not self._events:
            raise StopAsyncIteration
        return self._events.pop(0)


# ---------------------------------------------------------------------------
# PodWatcher
# ---------------------------------------------------------------------------


class TestPodWatcherEvents:
    def test_annotated_scheduled_pod_enqueued(self) -> None:
        queue = WorkQueue()
        pods = PodWatcher(_make_v1(), queue)

        pods._handle_event("ADDED", make_pod_raw(inherit="zone"))

        assert _drain(queue) == {ObjectKey("default", "web-0")}
        assert pods.pods_on_node("node-a") == {ObjectKey("default", "web-0")}

    def test_pod_without_annotation_ignored(self) -> None:
        queue = WorkQueue()
        pods = PodWatcher(_make_v1(), queue)

        pods._handle_event("ADDED", make_pod_raw(annotations={"a": "b"}))

        assert len(queue) == 0
        assert pods.pods_on_node("node-a") == set()

    def test_unscheduled_pod_ignored_until_bound(self) -> None:
        queue = WorkQueue()
        pods = PodWatcher(_make_v1(), queue)

        pods._handle_event("ADDED", make_pod_raw(inherit="zone", node_name=""))
        assert len(queue) == 0

        pods._handle_event("MODIFIED", make_pod_raw(inherit="zone", node_name="node-b"))
        assert _drain(queue) == {ObjectKey("default", "web-0")}
        assert pods.pods_on_node("node-b") == {ObjectKey("default", "web-0")}

    def test_deleted_pod_unindexed(self) -> None:
        queue = WorkQueue()
        pods = PodWatcher(_make_v1(), queue)
        pods._handle_event("ADDED", make_pod_raw(inherit="zone"))
        _drain(queue)

        pods._handle_event("DELETED", make_pod_raw(inherit="zone"))

        assert len(queue) == 0
        assert pods.pods_on_node("node-a") == set()

    def test_annotation_removed_unindexes(self) -> None:
        pods = PodWatcher(_make_v1(), WorkQueue())
        pods._handle_event("ADDED", make_pod_raw(inherit="zone"))
        pods._handle_event("MODIFIED", make_pod_raw(annotations={}))
        assert pods.pods_on_node("node-a") == set()

    def test_relist_rebuilds_index(self) -> None:
        queue = WorkQueue()
        pods = PodWatcher(_make_v1(), queue)
        pods._handle_event("ADDED", make_pod_raw(name="old", inherit="zone"))

        pods._on_list([make_pod_raw(name="new", inherit="zone", node_name="node-b")])

        assert pods.pods_on_node("node-a") == set()
        assert pods.pods_on_node("node-b") == {ObjectKey("default", "new")}

    def test_namespace_selects_namespaced_list(self) -> None:
        v1 = _make_v1()
        list_fn, kwargs = PodWatcher(v1, WorkQueue(), namespace="team-a")._list_call()
        assert list_fn is v1.list_namespaced_pod
        assert kwargs == {"namespace": "team-a"}

        list_fn, kwargs = PodWatcher(v1, WorkQueue())._list_call()
        assert list_fn is v1.list_pod_for_all_namespaces
        assert kwargs == {}


class TestListAndWatch:
    async def test_list_enqueues_and_marks_synced(self) -> None:
        v1 = _make_v1()
        v1.list_pod_for_all_namespaces = AsyncMock(
            return_value=SimpleNamespace(
                items=[make_pod_raw(name="a", inherit="zone"), make_pod_raw(name="b")],
                metadata=SimpleNamespace(resource_version="123"),
            )
        )
        queue = WorkQueue()
        pods = PodWatcher(v1, queue)
        assert not pods.has_synced

        resource_version = await pods._list()

        assert resource_version == "123"
        assert pods.has_synced
        assert _drain(queue) == {ObjectKey("default", "a")}

    async def test_watch_dispatches_events(self) -> None:
        v1 = _make_v1()
        queue = WorkQueue()
        pods = PodWatcher(v1, queue, resync_period=30)
        events = [
            {"type": "ADDED", "raw_object": make_pod_raw(name="a", inherit="zone")},
            {"type": "BOOKMARK", "raw_object": {}},
            {"type": "MODIFIED", "raw_object": make_pod_raw(name="b", inherit="rack")},
        ]
        fake_watch = MagicMock()
        fake_watch.stream = MagicMock(return_value=_FakeStream(events))

        with patch.object(watcher_module.watch, "Watch", return_value=fake_watch):
            await pods._watch("123")

        args, kwargs = fake_watch.stream.call_args
        assert args == (v1.list_pod_for_all_namespaces,)
        assert kwargs == {"resource_version": "123", "timeout_seconds": 30}
        assert _drain(queue) == {ObjectKey("default", "a"), ObjectKey("default", "b")}

    async def test_watch_error_event_raises(self) -> None:
        pods = PodWatcher(_make_v1(), WorkQueue())
        fake_watch = MagicMock()
        fake_watch.stream = MagicMock(
            return_value=_FakeStream([{"type": "ERROR", "raw_object": {"code": 410, "message": "too old"}}])
        )

        with patch.object(watcher_module.watch, "Watch", return_value=fake_watch):
            with pytest.raises(WatchExpiredError):
                await pods._watch("1")


# ---------------------------------------------------------------------------
# NodeWatcher
# ---------------------------------------------------------------------------


class TestNodeWatcher:
    def _setup(self) -> tuple[WorkQueue, PodWatcher, NodeWatcher]:
        queue = WorkQueue()
        v1 = _make_v1()
        pods = PodWatcher(v1, queue)
        nodes = NodeWatcher(v1, queue, pods)
        pods._handle_event("ADDED", make_pod_raw(name="on-a", inherit="zone", node_name="node-a"))
        pods._handle_event("ADDED", make_pod_raw(name="on-b", inherit="zone", node_name="node-b"))
        _drain(queue)
        return queue, pods, nodes

    def test_first_sighting_does_not_enqueue(self) -> None:
        queue, _, nodes = self._setup()
        nodes._on_list([make_node_raw("node-a", {"zone": "z1"})])
        assert len(queue) == 0

    def test_label_change_enqueues_pods_on_node(self) -> None:
        queue, _, nodes = self._setup()
        nodes._on_list([make_node_raw("node-a", {"zone": "z1"}), make_node_raw("node-b", {"zone": "z1"})])

        nodes._handle_event("MODIFIED", make_node_raw("node-a", {"zone": "z2"}))

        assert _drain(queue) == {ObjectKey("default", "on-a")}

    def test_unchanged_labels_do_not_enqueue(self) -> None:
        queue, _, nodes = self._setup()
        nodes._on_list([make_node_raw("node-a", {"zone": "z1"})])
        nodes._handle_event("MODIFIED", make_node_raw("node-a", {"zone": "z1"}))
        assert len(queue) == 0

    def test_relist_detects_changes(self) -> None:
        queue, _, nodes = self._setup()
        nodes._on_list([make_node_raw("node-a", {"zone": "z1"})])
        nodes._on_list([make_node_raw("node-a", {"zone": "z9"})])
        assert _drain(queue) == {ObjectKey("default", "on-a")}

    def test_deleted_node_forgotten(self) -> None:
        queue, _, nodes = self._setup()
        nodes._on_list([make_node_raw("node-a", {"zone": "z1"})])
        nodes._handle_event("DELETED", make_node_raw("node-a", {"zone": "z1"}))
        nodes._handle_event("ADDED", make_node_raw("node-a", {"zone": "z2"}))
        assert len(queue) == 0
