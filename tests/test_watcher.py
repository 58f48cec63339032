from unittest.mock import AsyncMock, MagicMock

import pytest

from kubexec.controller.watcher import ExecutorWatcher, WatchExpired
from kubexec.models import ResourceKey

KEY = ResourceKey(namespace="shop", name="uptime")


def event(event_type, name="uptime", generation=1, resource_version="100", namespace="shop"):
    return {
        "type": event_type,
        "object": {
            "metadata": {
                "namespace": namespace,
                "name": name,
                "generation": generation,
                "resourceVersion": resource_version,
            },
            "spec": {"containerNamePattern": "web", "command": "uptime"},
        },
    }


@pytest.fixture
def calls():
    return {"enqueued": [], "deleted": []}


@pytest.fixture
def watcher(calls):
    w = ExecutorWatcher(
        MagicMock(),
        enqueue=calls["enqueued"].append,
        on_delete=calls["deleted"].append,
    )
    w._custom_api = MagicMock()
    return w


def test_added_event_enqueues(watcher, calls):
    watcher.handle_event(event("ADDED"))

    assert calls["enqueued"] == [KEY]
    assert watcher.known_keys == [KEY]
    assert watcher._resource_version == "100"


def test_status_only_update_is_ignored(watcher, calls):
    watcher.handle_event(event("ADDED", generation=1))
    watcher.handle_event(event("MODIFIED", generation=1, resource_version="101"))

    assert calls["enqueued"] == [KEY]
    assert watcher._resource_version == "101"


def test_spec_change_enqueues(watcher, calls):
    watcher.handle_event(event("ADDED", generation=1))
    watcher.handle_event(event("MODIFIED", generation=2))

    assert calls["enqueued"] == [KEY, KEY]


def test_update_of_unseen_executor_enqueues(watcher, calls):
    watcher.handle_event(event("MODIFIED", generation=4))

    assert calls["enqueued"] == [KEY]


def test_deleted_event_forgets_and_cancels(watcher, calls):
    watcher.handle_event(event("ADDED"))
    watcher.handle_event(event("DELETED"))

    assert calls["deleted"] == [KEY]
    assert watcher.known_keys == []


def test_bookmark_only_moves_resource_version(watcher, calls):
    watcher.handle_event({"type": "BOOKMARK", "object": {"metadata": {"resourceVersion": "555"}}})

    assert calls["enqueued"] == []
    assert watcher._resource_version == "555"


def test_expired_watch_raises(watcher):
    with pytest.raises(WatchExpired):
        watcher.handle_event(
            {"type": "ERROR", "object": {"kind": "Status", "code": 410, "message": "too old resource version"}}
        )


def test_other_watch_errors_are_logged_only(watcher, calls):
    watcher.handle_event({"type": "ERROR", "object": {"code": 500, "reason": "InternalError"}})

    assert calls["enqueued"] == []


@pytest.mark.asyncio
async def test_relist_enqueues_everything_and_drops_vanished(watcher, calls):
    watcher.handle_event(event("ADDED", name="old"))
    calls["enqueued"].clear()
    watcher._custom_api.list_cluster_custom_object = AsyncMock(
        return_value={
            "metadata": {"resourceVersion": "900"},
            "items": [
                event("ADDED", name="uptime")["object"],
                event("ADDED", name="disk")["object"],
            ],
        }
    )

    await watcher._relist()

    assert calls["enqueued"] == [KEY, ResourceKey(namespace="shop", name="disk")]
    assert calls["deleted"] == [ResourceKey(namespace="shop", name="old")]
    assert watcher._resource_version == "900"
    watcher._custom_api.list_cluster_custom_object.assert_awaited_once_with(
        group="exec.chocolate-chip-stack.stackathon", version="v1", plural="executors"
    )


@pytest.mark.asyncio
async def test_namespaced_watcher_lists_one_namespace(calls):
    watcher = ExecutorWatcher(
        MagicMock(),
        enqueue=calls["enqueued"].append,
        on_delete=calls["deleted"].append,
        namespace="shop",
    )
    watcher._custom_api = MagicMock()
    watcher._custom_api.list_namespaced_custom_object = AsyncMock(
        return_value={"metadata": {"resourceVersion": "1"}, "items": []}
    )

    await watcher._relist()

    watcher._custom_api.list_namespaced_custom_object.assert_awaited_once_with(
        group="exec.chocolate-chip-stack.stackathon", version="v1", plural="executors", namespace="shop"
    )
