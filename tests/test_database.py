import re
import time

import pytest

from dstasks.database import TABLE_TASK, TABLE_TASK_DATA, Database, DatabaseError
from dstasks.models import RunState, Task, TaskData, TaskType


@pytest.fixture
def db():
    database = Database()
    yield database
    database.close()


def _task(code="code123456", name="demo", group_id=0):
    return Task(
        code=code,
        name=name,
        group_id=group_id,
        address_list=["http://a.example.com", "http://b.example.com"],
        program="cHJvZ3JhbQ==",
        field_count=3,
        is_browser_auto_load_images=False,
        default_user_agent="agent",
    )


def test_task_table_has_source_columns(db):
    fields = db.get_table_fields(TABLE_TASK)
    assert fields[0] == "groupId"
    assert "defaultUserAgent" in fields and "lastUpdateTime" in fields


def test_add_then_update_messages(db):
    task = _task()
    assert db.add_task(task) == "添加任务成功"
    task.name = "renamed"
    assert db.add_task(task) == "更新任务成功"
    assert db.get_task_with_code(task.code).name == "renamed"


def test_get_task_with_code_round_trip(db):
    task = _task()
    db.add_task(task)
    loaded = db.get_task_with_code(task.code)
    assert loaded.code == task.code
    assert loaded.address_list == task.address_list
    assert loaded.program == task.program
    assert loaded.field_count == 3
    assert loaded.is_browser_auto_load_images is False
    assert loaded.is_browser_plugins_enabled is True
    assert loaded.type is TaskType.EDIT
    assert loaded.is_have_name is True
    assert loaded.default_user_agent == "agent"
    assert re.fullmatch(r"\d{4}\.\d{2}\.\d{2} \d{2}:\d{2}:\d{2}", loaded.add_time)
    assert loaded.add_time == loaded.last_update_time


def test_get_task_with_code_missing_raises(db):
    with pytest.raises(DatabaseError):
        db.get_task_with_code("nothing")


def test_get_tasks_newest_first_with_group_name(db):
    db.add_task(_task("c1", "first"))
    db.add_task(_task("c2", "second"))
    db.add_task(_task("c3", "other", group_id=1))
    tasks = db.get_tasks(0)
    assert [t.code for t in tasks] == ["c2", "c1"]
    assert all(t.group_name == "默认组" for t in tasks)
    assert all(not t.is_run for t in tasks)
    assert [t.code for t in db.get_tasks(1)] == ["c3"]


def test_get_tasks_attaches_data_summary(db):
    db.add_task(_task("c1"))
    assert db.create_table("c1", ["title", "price"])
    db.async_update_task_data(TaskData("c1", 5, 2, RunState.STOP, "s", "e"))
    db.flush()
    (task,) = db.get_tasks(0)
    assert task.is_run is True
    assert task.data.num == 5
    assert task.data.repeat_num == 2
    assert task.data.state is RunState.FINISH


def test_create_table_fields_round_trip(db):
    assert db.create_table("c9", ["title", "price", "url"])
    assert db.get_table_fields("c9") == ["title", "price", "url"]
    assert db.create_table("c9", ["x"]) is False


def test_queued_inserts_and_updates(db):
    db.create_table("c1", ["title"])
    for i in range(250):
        db.async_add_task_data(f"insert into c1 (isRepeat, title) values ('0', 't{i}')")
    db.async_update_task_data(TaskData("c1", 1, 0, RunState.FINISH, "a", "b"))
    db.async_update_task_data(TaskData("c1", 250, 4, RunState.STOP, "a", "c"))
    db.flush()
    assert db.get_table_row_count("c1") == 250
    rows = db.select(
        4, f"select num, repeatNum, state, endTime from {TABLE_TASK_DATA} where tbName='c1'"
    )
    assert rows == [["250", "4", str(int(RunState.STOP)), "c"]]


def test_clear_table(db):
    db.create_table("c1", ["title"])
    db.async_add_task_data("insert into c1 (title) values ('x')")
    db.flush()
    assert db.clear_table("c1") is True
    assert db.get_table_row_count("c1") == 0
    assert db.select(1, f"select tbName from {TABLE_TASK_DATA}") == []


def test_del_task_data(db):
    assert db.del_task_data("c1") is False
    db.create_table("c1", ["title"])
    assert db.del_task_data("c1") is True
    assert db.get_table_fields("c1") == ["title"]
    assert db.del_task_data("c1", True) is True
    assert db.del_task_data("c1") is False
    assert db.select(1, f"select tbName from {TABLE_TASK_DATA}") == []


def test_del_task(db):
    db.add_task(_task("c1"))
    assert db.del_task("c1") == "删除成功"
    assert db.get_tasks(0) == []


def test_select_bad_sql_and_missing_table(db):
    assert db.select(1, "select * from missing") == []
    assert db.get_table_row_count("missing") == 0


def test_select_limits_columns(db):
    db.add_task(_task("c1", "n"))
    assert db.select(2, f"select code, name, groupId from {TABLE_TASK}") == [["c1", "n"]]


def test_random_user_agent(db):
    assert db.random_user_agent() == db.user_agents[0].user_agent
    assert db.random_user_agent().startswith("Mozilla/5.0")


def test_background_writer_persists(tmp_path):
    path = tmp_path / "data.db"
    database = Database(path)
    database.create_table("c1", ["title"])
    database.start()
    for i in range(10):
        database.async_add_task_data(f"insert into c1 (title) values ('t{i}')")
    deadline = time.monotonic() + 5
    while database.get_table_row_count("c1") < 10 and time.monotonic() < deadline:
        time.sleep(0.05)
    database.close()
    with Database(path) as reopened:
        assert reopened.get_table_row_count("c1") == 10
        assert reopened.get_table_fields("c1") == ["title"]