import pytest

from search_api.errors import TaskConflictError
from search_api.models import TaskType
from search_api.services.tasks import TaskQueue, encode_payload


@pytest.fixture
def queue(db):
    return TaskQueue(db)


def test_identical_enqueue_returns_existing_task(queue):
    first = queue.enqueue(TaskType.add_index, "srv1", "idx1")
    second = queue.enqueue("add_index", "srv1", "idx1")
    assert first.id == second.id
    assert queue.count() == 1


def test_null_index_and_data_are_deduplicated(queue):
    queue.enqueue(TaskType.delete_all_items, "srv1")
    queue.enqueue(TaskType.delete_all_items, "srv1")
    assert queue.count("srv1") == 1


def test_database_rejects_second_insert_with_null_columns(Session):
    first, second = Session(), Session()
    try:
        TaskQueue(first)._insert("add_index", "srv1", "idx1", None)
        first.commit()
        with pytest.raises(TaskConflictError):
            TaskQueue(second)._insert("add_index", "srv1", "idx1", None)
        second.rollback()

        TaskQueue(first)._insert("delete_all_items", "srv1", None, None)
        first.commit()
        with pytest.raises(TaskConflictError):
            TaskQueue(second)._insert("delete_all_items", "srv1", None, None)
        second.rollback()

        assert TaskQueue(second).count("srv1") == 2
    finally:
        first.close()
        second.close()


def test_payload_is_canonical(queue):
    queue.enqueue(TaskType.delete_items, "srv1", "idx1", {"b": 1, "a": 2})
    queue.enqueue(TaskType.delete_items, "srv1", "idx1", {"a": 2, "b": 1})
    assert queue.count() == 1
    assert encode_payload({"b": 1, "a": 2}) == '{"a":2,"b":1}'


def test_different_payloads_are_separate_tasks(queue):
    queue.enqueue(TaskType.delete_items, "srv1", "idx1", ["1"])
    queue.enqueue(TaskType.delete_items, "srv1", "idx1", ["2"])
    assert queue.count("srv1", "idx1") == 2


def test_dequeue_all_is_fifo_and_non_destructive(queue):
    queue.enqueue(TaskType.add_index, "srv1", "idx1")
    queue.enqueue(TaskType.delete_items, "srv1", "idx1", ["a"])
    queue.enqueue(TaskType.add_index, "srv2", "idx2")

    tasks = queue.dequeue_all("srv1")
    assert [t.type for t in tasks] == ["add_index", "delete_items"]
    assert [t.id for t in tasks] == sorted(t.id for t in tasks)
    assert queue.count() == 3
    assert queue.payload(tasks[1]) == ["a"]


def test_delete_missing_task_is_noop(queue):
    task = queue.enqueue(TaskType.add_index, "srv1", "idx1")
    assert queue.delete(task.id) is True
    assert queue.delete(task.id) is False
    assert queue.get(task.id) is None


def test_delete_for_index_respects_server_filter(queue):
    queue.enqueue(TaskType.add_index, "srv1", "idx1")
    queue.enqueue(TaskType.add_index, "srv2", "idx1")
    queue.enqueue(TaskType.add_index, "srv1", "idx2")

    assert queue.delete_for_index("idx1", "srv1") == 1
    assert queue.count("srv2", "idx1") == 1
    assert queue.delete_for_index("idx1") == 1
    assert queue.count() == 1


def test_delete_for_server(queue):
    queue.enqueue(TaskType.add_index, "srv1", "idx1")
    queue.enqueue(TaskType.delete_all_items, "srv1")
    queue.enqueue(TaskType.add_index, "srv2", "idx2")
    assert queue.delete_for_server("srv1") == 2
    assert [t.server_id for t in queue.dequeue_all()] == ["srv2"]


def test_server_ids_ordered_by_oldest_task(queue):
    queue.enqueue(TaskType.add_index, "srv2", "a")
    queue.enqueue(TaskType.add_index, "srv1", "b")
    queue.enqueue(TaskType.add_index, "srv2", "c")
    assert queue.server_ids() == ["srv2", "srv1"]


def test_unknown_task_type_rejected(queue):
    with pytest.raises(ValueError):
        queue.enqueue("reindex_everything", "srv1")
