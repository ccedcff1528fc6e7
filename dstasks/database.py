"""SQLite storage for tasks and the data they collect."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Iterable

from dstasks.models import RunState, Task, TaskData, TaskGroup, TaskType, TaskUserAgent

log = logging.getLogger(__name__)

TABLE_TASK_DATA = "ds_task_data"
TABLE_TASK = "ds_task"

_TIME_FORMAT = "%Y.%m.%d %H:%M:%S"
_INSERT_BATCH = 200
_IDLE_SECONDS = 1.0

_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/100.0.4896.75 Safari/537.36 Edg/100.0.1185.39"
)

_CREATE_TASK_DATA = (
    f"create table {TABLE_TASK_DATA} (id INTEGER PRIMARY KEY AUTOINCREMENT,"
    "tbName text, num int,repeatNum int,state int,startTime text,  endTime text)"
)

_CREATE_TASK = (
    f"create table {TABLE_TASK} (id INTEGER PRIMARY KEY AUTOINCREMENT,code text,"
    "groupId int,name text, addressList text,program text, fieldCount int,"
    "isBrowserAllowRunningInsecureContent int,isBrowserAutoLoadImages int,"
    "isBrowserAutoLoadIconsForPage int,isBrowserPluginsEnabled int,"
    "defaultUserAgent text, addTime text,lastUpdateTime text)"
)

_TASK_COLUMNS = (
    "id,code,groupId,name,addressList,program,fieldCount,"
    "isBrowserAllowRunningInsecureContent,isBrowserAutoLoadImages,"
    "isBrowserAutoLoadIconsForPage,isBrowserPluginsEnabled,defaultUserAgent,"
    "addTime,lastUpdateTime"
)


class DatabaseError(Exception):
    """Raised when a database operation fails."""


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _as_text(value: object) -> str:
    return "" if value is None else str(value)


def _as_int(value: object) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class Database:
    """Task storage backed by SQLite, with a background writer for task data."""

    def __init__(self, path: str | Path = ":memory:") -> None:
        self.task_groups: list[TaskGroup] = [TaskGroup(0, "默认组")]
        self.user_agents: list[TaskUserAgent] = [
            TaskUserAgent(id=i, name=f"win10{i}", user_agent=_DEFAULT_USER_AGENT, terminal=1)
            for i in range(2)
        ]
        self.finger = ""

        self._lock = threading.RLock()
        self._add_queue: deque[str] = deque()
        self._update_queue: deque[TaskData] = deque()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        try:
            self._conn = sqlite3.connect(str(path), check_same_thread=False)
        except sqlite3.Error as exc:
            raise DatabaseError(f"cannot open database: {exc}") from exc
        self._conn.isolation_level = None

        tables = self._tables()
        with self._lock:
            if TABLE_TASK_DATA not in tables:
                self._conn.execute(_CREATE_TASK_DATA)
            if TABLE_TASK not in tables:
                self._conn.execute(_CREATE_TASK)

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _tables(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "select name from sqlite_master where type='table'"
            ).fetchall()
        return [row[0] for row in rows]

    # -- business tables -------------------------------------------------

    def create_table(self, tb_name: str, fields: Iterable[str]) -> bool:
        """Create a data table with the given text fields and register it."""
        columns = "".join(f" , {_quote(name)} text " for name in fields)
        sql = (
            f"create table {_quote(tb_name)} "
            f"(id INTEGER PRIMARY KEY AUTOINCREMENT , isRepeat text{columns} ) "
        )
        with self._lock:
            try:
                self._conn.execute(sql)
            except sqlite3.Error as exc:
                log.warning("create_table failed: %s, %s", exc, sql)
                return False
            self._conn.execute(
                f"insert into {TABLE_TASK_DATA} (tbName) values (?)", (tb_name,)
            )
        return True

    def clear_table(self, tb_name: str) -> bool:
        """Empty a data table, reset its id sequence and forget its summary."""
        with self._lock:
            try:
                self._conn.execute(f"DELETE FROM {_quote(tb_name)}")
                self._conn.execute(
                    "UPDATE sqlite_sequence SET seq = 0 WHERE name = ?", (tb_name,)
                )
                self._conn.execute(
                    f"DELETE FROM {TABLE_TASK_DATA} where tbName=?", (tb_name,)
                )
            except sqlite3.Error as exc:
                log.warning("clear_table failed: %s", exc)
                return False
        return True

    # -- queued writes ---------------------------------------------------

    def async_add_task_data(self, sql: str) -> None:
        """Queue an insert statement for the background writer."""
        self._add_queue.append(sql)

    def async_update_task_data(self, task_data: TaskData) -> None:
        """Queue an update of a table's run summary."""
        self._update_queue.append(task_data)

    def _write_inserts(self) -> int:
        batch = []
        while self._add_queue and len(batch) < _INSERT_BATCH:
            batch.append(self._add_queue.popleft())
        if not batch:
            return 0
        with self._lock:
            self._conn.execute("BEGIN")
            for sql in batch:
                try:
                    self._conn.execute(sql)
                except sqlite3.Error as exc:
                    log.warning("queued insert failed: %s, %s", exc, sql)
            self._conn.execute("COMMIT")
        return len(batch)

    def _write_updates(self) -> int:
        latest: dict[str, TaskData] = {}
        count = 0
        while self._update_queue:
            data = self._update_queue.popleft()
            latest[data.tb_name] = data
            count += 1
        if not latest:
            return 0
        with self._lock:
            self._conn.execute("BEGIN")
            for data in latest.values():
                self._conn.execute(
                    f"UPDATE {TABLE_TASK_DATA} SET num=?,repeatNum=?,state=?,"
                    "startTime=?,endTime=? WHERE tbName = ?",
                    (
                        data.num,
                        data.repeat_num,
                        int(data.state),
                        data.start_time,
                        data.end_time,
                        data.tb_name,
                    ),
                )
            self._conn.execute("COMMIT")
        return count

    def flush(self) -> None:
        """Write every queued insert and update now."""
        while self._add_queue or self._update_queue:
            while self._write_inserts():
                pass
            self._write_updates()

    def _run(self) -> None:
        while not self._stop.is_set():
            if not self._write_inserts():
                self._stop.wait(_IDLE_SECONDS)
            self._write_updates()

    def start(self) -> None:
        """Start the background writer thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="dstasks-db", daemon=True)
        self._thread.start()

    def close(self) -> None:
        """Stop the writer, write what is left and close the connection."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self.flush()
        self._conn.close()

    # -- tasks -----------------------------------------------------------

    def add_task(self, task: Task) -> str:
        """Insert the task, or update it if its code is already stored."""
        now = datetime.now().strftime(_TIME_FORMAT)
        addresses = ",".join(task.address_list)
        flags = (
            int(task.is_browser_allow_running_insecure_content),
            int(task.is_browser_auto_load_images),
            int(task.is_browser_auto_load_icons_for_page),
            int(task.is_browser_plugins_enabled),
        )
        with self._lock:
            row = self._conn.execute(
                f"select count(1) from {TABLE_TASK} where code=? limit 1", (task.code,)
            ).fetchone()
            if row and row[0] > 0:
                try:
                    self._conn.execute(
                        f"update {TABLE_TASK} set groupId=?,name=?,addressList=?,"
                        "program=?,fieldCount=?,isBrowserAllowRunningInsecureContent=?,"
                        "isBrowserAutoLoadImages=?,isBrowserAutoLoadIconsForPage=?,"
                        "isBrowserPluginsEnabled=?,defaultUserAgent=?,lastUpdateTime=? "
                        "where code=?",
                        (task.group_id, task.name, addresses, task.program,
                         task.field_count, *flags, task.default_user_agent, now, task.code),
                    )
                except sqlite3.Error as exc:
                    raise DatabaseError(f"更新任务失败: {exc}") from exc
                return "更新任务成功"
            try:
                self._conn.execute(
                    f"insert into {TABLE_TASK} (code,groupId,name,addressList,program,"
                    "fieldCount,isBrowserAllowRunningInsecureContent,"
                    "isBrowserAutoLoadImages,isBrowserAutoLoadIconsForPage,"
                    "isBrowserPluginsEnabled,defaultUserAgent,addTime,lastUpdateTime) "
                    "values (?,?,?,?,?,?,?,?,?,?,?,?,?)",
                    (task.code, task.group_id, task.name, addresses, task.program,
                     task.field_count, *flags, task.default_user_agent, now, now),
                )
            except sqlite3.Error as exc:
                raise DatabaseError(f"添加任务失败: {exc}") from exc
        return "添加任务成功"

    def del_task(self, code: str) -> str:
        """Delete the task with the given code."""
        with self._lock:
            try:
                self._conn.execute(f"DELETE FROM {TABLE_TASK} where code=?", (code,))
            except sqlite3.Error as exc:
                raise DatabaseError(f"删除任务失败: {exc}") from exc
        return "删除成功"

    def del_task_data(self, code: str, delete: bool = False) -> bool:
        """Report whether a task's data table exists, dropping it if asked."""
        with self._lock:
            exists = code in self._tables()
            if exists and delete:
                self._conn.execute(f"DELETE FROM {_quote(code)}")
                self._conn.execute(f"drop table {_quote(code)}")
                self._conn.execute(
                    f"DELETE FROM {TABLE_TASK_DATA} where tbName=?", (code,)
                )
        return exists

    def _group_name(self, group_id: int) -> str:
        if 0 <= group_id < len(self.task_groups):
            return self.task_groups[group_id].name
        return ""

    def get_tasks(self, group_id: int) -> list[Task]:
        """Return the tasks of a group, newest first, with their data summaries."""
        with self._lock:
            try:
                data_rows = self._conn.execute(
                    f"select tbName,num,repeatNum,state,startTime,endTime "
                    f"from {TABLE_TASK_DATA}"
                ).fetchall()
                task_rows = self._conn.execute(
                    f"select id,code,name,groupId,addTime,lastUpdateTime from {TABLE_TASK} "
                    "where groupId=? order by id desc",
                    (group_id,),
                ).fetchall()
            except sqlite3.Error as exc:
                raise DatabaseError(f"获取任务失败: {exc}") from exc

        summaries = {
            _as_text(row[0]): TaskData(
                tb_name=_as_text(row[0]),
                num=_as_int(row[1]),
                repeat_num=_as_int(row[2]),
                state=RunState.FINISH,
                start_time=_as_text(row[4]),
                end_time=_as_text(row[5]),
            )
            for row in data_rows
        }
        tasks = []
        for row in task_rows:
            task = Task(
                id=_as_int(row[0]),
                code=_as_text(row[1]),
                name=_as_text(row[2]),
                group_id=_as_int(row[3]),
                add_time=_as_text(row[4]),
                last_update_time=_as_text(row[5]),
            )
            task.group_name = self._group_name(task.group_id)
            if task.code in summaries:
                task.is_run = True
                task.data = summaries[task.code]
            tasks.append(task)
        return tasks

    def get_task_with_code(self, code: str) -> Task:
        """Load the full task with the given code for editing."""
        with self._lock:
            try:
                row = self._conn.execute(
                    f"select {_TASK_COLUMNS} from {TABLE_TASK} where code=? limit 1",
                    (code,),
                ).fetchone()
            except sqlite3.Error as exc:
                raise DatabaseError(f"获取任务失败: {exc}") from exc
        if row is None:
            raise DatabaseError("获取任务失败")
        return Task(
            id=_as_int(row[0]),
            code=_as_text(row[1]),
            group_id=_as_int(row[2]),
            name=_as_text(row[3]),
            type=TaskType.EDIT,
            is_have_name=True,
            address_list=_as_text(row[4]).split(","),
            program=_as_text(row[5]),
            field_count=_as_int(row[6]),
            is_browser_allow_running_insecure_content=bool(_as_int(row[7])),
            is_browser_auto_load_images=bool(_as_int(row[8])),
            is_browser_auto_load_icons_for_page=bool(_as_int(row[9])),
            is_browser_plugins_enabled=bool(_as_int(row[10])),
            default_user_agent=_as_text(row[11]),
            add_time=_as_text(row[12]),
            last_update_time=_as_text(row[13]),
        )

    # -- queries ---------------------------------------------------------

    def select(self, column_count: int, sql: str) -> list[list[str]]:
        """Run a query and return the first column_count columns as text."""
        with self._lock:
            try:
                rows = self._conn.execute(sql).fetchall()
            except sqlite3.Error as exc:
                log.warning("select failed: %s, %s", exc, sql)
                return []
        return [[_as_text(value) for value in row[:column_count]] for row in rows]

    def get_table_row_count(self, tb_name: str) -> int:
        """Return the number of rows in a table, or 0 if it cannot be read."""
        with self._lock:
            try:
                row = self._conn.execute(
                    f"SELECT count(1) from {_quote(tb_name)}"
                ).fetchone()
            except sqlite3.Error as exc:
                log.warning("row count failed: %s", exc)
                return 0
        return _as_int(row[0]) if row else 0

    def get_table_fields(self, tb_name: str) -> list[str]:
        """Return a data table's field names without the id and isRepeat columns."""
        with self._lock:
            rows = self._conn.execute(f"PRAGMA table_info({_quote(tb_name)})").fetchall()
        return [_as_text(row[1]) for row in rows][2:]

    def random_user_agent(self) -> str:
        """Return the user agent new tasks start with."""
        return self.user_agents[0].user_agent