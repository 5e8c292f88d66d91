import copy
import logging

import pytest

from search_api.backends.memory import MemoryBackend
from search_api.errors import BackendError, ConfigurationError, InvalidBackendError
from search_api.models import SearchIndex, TaskType


def _failing_server(servers, server_id="srv1"):
    return servers.create(id=server_id, name="Failing", backend_id="null_backend", backend_config={"fail": True})


def _task_types(servers, server_id, index_id=None):
    return [t.type for t in servers.tasks.dequeue_all(server_id, index_id)]


def test_failed_delete_all_items_is_queued_and_cleared_by_index_delete(servers, indexes):
    server = _failing_server(servers)
    index = indexes.create(id="idx1", name="Index 1", server_id="srv1")

    assert server.delete_all_items(index) is False
    assert _task_types(servers, "srv1", "idx1").count("delete_all_items") == 1

    indexes.delete(index)
    remaining = _task_types(servers, "srv1")
    assert "delete_all_items" not in remaining
    # The backend still has to forget the index, so one removal stays queued.
    assert remaining == ["remove_index"]


def test_repeated_add_index_failure_queues_single_task(servers, indexes):
    server = _failing_server(servers)
    index = indexes.create(id="idx1", name="Index 1")

    assert server.add_index(index) is False
    assert server.add_index(index) is False
    assert _task_types(servers, "srv1", "idx1") == ["add_index"]


def test_failure_is_logged_with_context(servers, indexes, caplog):
    server = _failing_server(servers)
    index = indexes.create(id="idx1", name="Index 1")

    with caplog.at_level(logging.ERROR, logger="search_api.services.server"):
        server.delete_items(index, ["1", "2"])

    records = [r for r in caplog.records if getattr(r, "operation", None) == "delete_items"]
    assert len(records) == 1
    assert records[0].server == "srv1"
    assert records[0].index == "idx1"
    assert servers.tasks.payload(servers.tasks.dequeue_all("srv1")[0]) == ["1", "2"]


def test_remove_index_purges_pending_tasks_first(servers, indexes):
    server = _failing_server(servers)
    index = indexes.create(id="idx1", name="Index 1")
    server.add_index(index)
    server.delete_items(index, ["1"])
    servers.tasks.enqueue(TaskType.delete_all_items, "srv1", "other")

    assert server.remove_index(index) is False
    assert _task_types(servers, "srv1", "idx1") == ["remove_index"]
    assert _task_types(servers, "srv1", "other") == ["delete_all_items"]


def test_remove_index_success_leaves_no_tasks(servers, indexes):
    server = servers.create(id="srv1", name="Memory", backend_id="memory")
    index = indexes.create(id="idx1", name="Index 1", server_id="srv1")
    servers.tasks.enqueue(TaskType.delete_items, "srv1", "idx1", ["a"])

    assert server.remove_index(index) is True
    assert servers.tasks.count("srv1", "idx1") == 0


def test_disabling_server_disables_exactly_its_indexes(servers, indexes):
    servers.create(id="srv1", name="One", backend_id="memory")
    servers.create(id="srv2", name="Two", backend_id="memory")
    indexes.create(id="a", name="A", server_id="srv1")
    indexes.create(id="b", name="B", server_id="srv1")
    indexes.create(id="c", name="C", server_id="srv2")

    servers.require("srv1").set_status(False).save()

    status = {i.id: i.status for i in indexes.registry.load_all()}
    assert status == {"a": False, "b": False, "c": True}


def test_clone_and_copy_never_share_backend(servers):
    server = servers.create(id="srv1", name="Memory", backend_id="memory", backend_config={"min_chars": 2})
    backend = server.get_backend()
    assert server.get_backend() is backend

    clone = server.clone("srv2")
    assert clone.id == "srv2"
    assert clone.backend_config == server.backend_config
    assert clone.get_backend() is not backend
    assert copy.copy(server).get_backend() is not backend


def test_copy_config_changes_stay_on_the_copy(servers, db):
    server = servers.create(id="srv1", name="Memory", backend_id="memory", backend_config={"min_chars": 2})
    backend = server.get_backend()

    dup = copy.copy(server)
    dup.set_backend_config({"min_chars": 5})

    assert dup.id == "srv1"
    assert dup.record is not server.record
    assert dup.get_backend().get_configuration()["min_chars"] == 5
    assert server.backend_config["min_chars"] == 2
    assert server.get_backend() is backend
    assert backend.get_configuration()["min_chars"] == 2
    db.expire_all()
    assert servers.store.load("srv1").backend_config["min_chars"] == 2


def test_backend_config_change_rebuilds_backend(servers):
    server = servers.create(id="srv1", name="Memory", backend_id="memory")
    backend = server.get_backend()
    server.set_backend_config({"min_chars": 3})
    rebuilt = server.get_backend()
    assert rebuilt is not backend
    assert rebuilt.get_configuration() == {"min_chars": 3}


def test_update_index_reindexes_exactly_once(servers, indexes, monkeypatch):
    servers.create(id="srv1", name="Memory", backend_id="memory")
    index = indexes.create(id="idx1", name="Index 1", server_id="srv1", fields={"title": "text"})
    calls = []
    monkeypatch.setattr(SearchIndex, "reindex", lambda self: calls.append(self.id))

    assert indexes.update_fields(index, {"title": "text", "body": "text"}) is True
    assert calls == ["idx1"]

    assert indexes.update_fields(index, {"title": "text", "body": "text"}) is True
    assert calls == ["idx1"]


def test_update_index_marks_index_for_reindex(servers, indexes):
    servers.create(id="srv1", name="Memory", backend_id="memory")
    index = indexes.create(id="idx1", name="Index 1", server_id="srv1", fields={"title": "text"})
    assert index.needs_reindex is False

    indexes.update_fields(index, {"title": "string"})
    assert indexes.registry.require("idx1").needs_reindex is True


def test_failed_update_index_queues_original_snapshot(servers, indexes, monkeypatch):
    servers.create(id="srv1", name="Memory", backend_id="memory")
    index = indexes.create(id="idx1", name="Index 1", server_id="srv1", fields={"title": "text"})

    def boom(self, index):
        raise BackendError("engine offline", backend_id="memory")

    monkeypatch.setattr(MemoryBackend, "update_index", boom)
    assert indexes.update_fields(index, {"body": "text"}) is False

    [task] = servers.tasks.dequeue_all("srv1", "idx1")
    assert task.type == "update_index"
    assert servers.tasks.payload(task)["fields"] == {"title": "text"}
    assert index.needs_reindex is False


def test_read_path_errors_propagate(servers, indexes):
    server = _failing_server(servers)
    index = indexes.create(id="idx1", name="Index 1", server_id="srv1")
    with pytest.raises(BackendError):
        server.index_items(index, {"1": {"title": "x"}})


def test_unknown_backend_is_rejected_on_create(servers):
    with pytest.raises(InvalidBackendError):
        servers.create(id="srv1", name="Nope", backend_id="does_not_exist")


def test_invalid_configuration_reports_field(servers):
    with pytest.raises(ConfigurationError) as excinfo:
        servers.create(id="srv1", name="Memory", backend_id="memory", backend_config={"min_chars": 0})
    assert excinfo.value.field == "min_chars"
    assert servers.load("srv1") is None


def test_unregistered_backend_propagates_invalid_backend(servers, indexes, plugins):
    server = servers.create(id="srv1", name="Memory", backend_id="memory")
    index = indexes.create(id="idx1", name="Index 1")
    plugins.unregister("memory")

    reloaded = servers.require("srv1")
    assert reloaded.has_valid_backend() is False
    with pytest.raises(InvalidBackendError):
        reloaded.add_index(index)
    assert servers.tasks.count() == 0

    reloaded.save()
    assert servers.require("srv1").backend_config == {}
    assert server.record is reloaded.record


def test_server_save_persists_live_backend_config(servers):
    server = servers.create(id="srv1", name="Memory", backend_id="memory")
    assert server.backend_config == {"min_chars": 1}

    server.submit_configuration({"min_chars": 4})
    server.save()
    assert servers.require("srv1").backend_config == {"min_chars": 4}


def test_server_delete_detaches_indexes_and_drops_tasks(servers, indexes):
    server = servers.create(id="srv1", name="Memory", backend_id="memory")
    index = indexes.create(id="idx1", name="Index 1", server_id="srv1")
    server.index_items(index, {"1": {"title": "hello"}})
    servers.tasks.enqueue(TaskType.delete_all_items, "srv1")

    server.delete()

    assert servers.load("srv1") is None
    detached = indexes.registry.require("idx1")
    assert detached.server_id is None
    assert detached.status is False
    assert servers.tasks.count("srv1") == 0


def test_server_delete_with_invalid_backend(servers, indexes, plugins):
    servers.create(id="srv1", name="Memory", backend_id="memory")
    plugins.unregister("memory")
    servers.require("srv1").delete()
    assert servers.load("srv1") is None


def test_capabilities_are_forwarded(servers):
    server = servers.create(id="srv1", name="Memory", backend_id="memory")
    assert server.supports_feature("search_api_conditions") is True
    assert server.supports_feature("search_api_facets") is False
    assert server.supports_datatype("text") is True
    assert server.supports_datatype("location") is False
    assert server.configuration_schema()["properties"]["min_chars"]["default"] == 1
    labels = [row["label"] for row in server.view_settings()]
    assert "Stored items" in labels
