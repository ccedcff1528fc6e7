# dstasks

The core of a web data-scraping workbench, as a plain Python library. It needs nothing outside the standard library. It has four modules.

## `dstasks.models`: task records

- `Task` holds a crawl task: its code, group, address list, name, program, field count, browser options, default user agent, timestamps and a `TaskData` run summary.
- `TaskGroup`, `TaskUserAgent`, `TaskData` and `Version` are plain dataclasses.
- `RunState` (`FINISH`, `STOP`) and `TaskType` (`ADD`, `EDIT`) are integer enums.

A task can be exported to a portable, base64-encoded text and imported again. `Task.to_text` / `Task.from_text` work on strings, and `Task.to_file` / `Task.from_file` work on files. The export carries the address list, name, program, field count and the four browser flags. If the text does not decode to the expected eight attributes, `from_text` and `from_file` raise `ValueError`.

## `dstasks.database`: SQLite storage

`Database(path=":memory:")` opens or creates an SQLite database holding the `ds_task` and `ds_task_data` tables. It can be used as a context manager.

- `add_task(task)` inserts a task, or updates it if its code is already stored. It returns a status message.
- `get_tasks(group_id)` returns a group's tasks, newest first. Each task carries its group name and, if it has one, its data summary.
- `get_task_with_code(code)` loads a full task for editing.
- `del_task(code)` deletes a task.
- `del_task_data(code, delete=False)` reports whether a task's data table exists, and drops it if asked.
- `create_table(tb_name, fields)` and `clear_table(tb_name)` manage per-task result tables and return `True` or `False`.
- `select(column_count, sql)`, `get_table_row_count(tb_name)` and `get_table_fields(tb_name)` read data back. The field list leaves out the `id` and `isRepeat` columns.
- `random_user_agent()` returns the user agent that new tasks start with.

Result rows and run summaries can be written in the background:

- `async_add_task_data(sql)` queues an insert statement. The writer commits queued inserts in batches of up to 200.
- `async_update_task_data(task_data)` queues a summary update. Only the latest update for each table is written.
- `start()` runs the writer thread.
- `flush()` writes everything that is queued.
- `close()` stops the writer, flushes the queues and closes the connection.

`add_task`, `del_task`, `get_tasks` and `get_task_with_code` raise `DatabaseError` on failure. `get_task_with_code` also raises it when no task has the code. The table helpers log failures and return `False`, `0` or an empty list instead.

## `dstasks.tabs`: tab bookkeeping

`TabSet` tracks open pages as `TabPage` objects of a `PageKind`, together with the current selection.

- `create_index`, `create_settings`, `create_about` and `create_task_manage` open a page at most once. If the page is already open, they switch to it.
- `create_task(address=None, user_agent="")` opens a new task. `new_task` gives the task a random `codeNNNNNN` code and splits the address text into lines.
- `open_task(task)` and `open_task_data(task_name, task_code)` may be called any number of times.
- `rename(page, name)` retitles an open page. It raises `ValueError` if the page is not open.
- `close_tab(index)` removes a page and returns `True`. The index page cannot be closed: for it, `close_tab` returns `False`.

`format_tab_name` pads titles and shortens any title longer than 15 characters.

## `dstasks.api`: service client

- `make_finger(host_name, unique_id)` derives the device fingerprint.
- `system_info()` describes the machine.
- `ApiClient(host, app_version="1.3", finger="", fetch=None, timeout=10.0)` builds and sends requests:
  - `check_version_url(info)` and `heartbeat_url(count)` build the request URLs.
  - `check_version()` returns `(state, message, Version)`.
  - `report_heart(count)` returns `(state, message)`.
  - Network errors come back as a failed state with the error message.
  - Pass `fetch` to supply your own URL-to-bytes function.
- `parse_check_version_reply` and `parse_report_reply` read the service's JSON replies. A reply counts as a success when its `code` is 1000.

## Install

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from dstasks.database import Database
from dstasks.models import Task

task = Task(code="code123456", name="News list", address_list=["https://example.com/news"])
task.to_file("news.task")
restored = Task.from_file("news.task")

with Database("data.db") as db:
    print(db.add_task(restored))
    for stored in db.get_tasks(0):
        print(stored.code, stored.name, stored.group_name)
```

```python
from dstasks.api import ApiClient, make_finger

client = ApiClient("https://api.example.com", finger=make_finger("host", "id"))
print(client.heartbeat_url(1))
```

## What this package does not do

- It has no graphical interface.
- It has no flow editor.
- It has no command-line program.
- It does not drive a browser or run crawl tasks.

It stores and describes tasks, tracks which pages are open, and talks to the version and heartbeat service. Running a task's program is left to the caller.