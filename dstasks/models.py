"""Data models for crawl tasks, their groups, results and version info."""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path

_ATTRIBUTE_COUNT = 8


def _b64encode(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _b64decode(text: str) -> str:
    try:
        raw = base64.b64decode(text.encode("utf-8"))
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 data: {exc}") from exc
    return raw.decode("utf-8", errors="replace")


def _to_int(text: str) -> int:
    """Parse an integer the lenient way: anything unparsable becomes 0."""
    try:
        return int(text.strip())
    except ValueError:
        return 0


@dataclass
class TaskGroup:
    """A named group of tasks."""

    id: int = 0
    name: str = ""


@dataclass
class TaskUserAgent:
    """A browser user agent that tasks may run with."""

    id: int = 0
    name: str = ""
    user_agent: str = ""
    terminal: int = 0


class RunState(IntEnum):
    """Outcome of a task run."""

    FINISH = 10
    STOP = 11


@dataclass
class TaskData:
    """Summary of the data a task has collected into its table."""

    tb_name: str = ""
    num: int = 0
    repeat_num: int = 0
    state: RunState = RunState.FINISH
    start_time: str = ""
    end_time: str = ""


class TaskType(IntEnum):
    """Whether a task was created locally or loaded for editing."""

    ADD = 10
    EDIT = 11


@dataclass
class Task:
    """A crawl task: its addresses, program and browser options."""

    id: int = 0
    code: str = ""
    group_id: int = 0
    address_list: list[str] = field(default_factory=list)
    type: TaskType = TaskType.ADD
    name: str = ""
    is_have_name: bool = False
    program: str = ""
    field_count: int = 0
    is_browser_allow_running_insecure_content: bool = True
    is_browser_auto_load_images: bool = True
    is_browser_auto_load_icons_for_page: bool = True
    is_browser_plugins_enabled: bool = True
    default_user_agent: str = ""
    group_name: str = ""
    add_time: str = ""
    last_update_time: str = ""
    show_num_row: int = 0
    is_run: bool = False
    data: TaskData = field(default_factory=TaskData)

    def to_text(self) -> str:
        """Encode the exportable part of the task as a base64 text."""
        attrs = [
            _b64encode(",".join(self.address_list)),
            _b64encode(self.name),
            self.program,
            _b64encode(str(self.field_count)),
            _b64encode(str(int(self.is_browser_allow_running_insecure_content))),
            _b64encode(str(int(self.is_browser_auto_load_images))),
            _b64encode(str(int(self.is_browser_auto_load_icons_for_page))),
            _b64encode(str(int(self.is_browser_plugins_enabled))),
        ]
        return _b64encode(",".join(attrs))

    @classmethod
    def from_text(cls, content: str) -> Task:
        """Build a task from text produced by :meth:`to_text`.

        Raises ValueError if the text does not hold the expected attributes.
        """
        attrs = _b64decode(content.strip()).split(",")
        if len(attrs) != _ATTRIBUTE_COUNT:
            raise ValueError(
                f"expected {_ATTRIBUTE_COUNT} task attributes, got {len(attrs)}"
            )
        return cls(
            address_list=_b64decode(attrs[0]).split(","),
            name=_b64decode(attrs[1]),
            program=attrs[2],
            field_count=_to_int(_b64decode(attrs[3])),
            is_browser_allow_running_insecure_content=bool(_to_int(_b64decode(attrs[4]))),
            is_browser_auto_load_images=bool(_to_int(_b64decode(attrs[5]))),
            is_browser_auto_load_icons_for_page=bool(_to_int(_b64decode(attrs[6]))),
            is_browser_plugins_enabled=bool(_to_int(_b64decode(attrs[7]))),
        )

    def to_file(self, filename: str | Path) -> None:
        """Export the task to a file."""
        Path(filename).write_text(self.to_text(), encoding="utf-8")

    @classmethod
    def from_file(cls, filename: str | Path) -> Task:
        """Import a task from a file written by :meth:`to_file`."""
        return cls.from_text(Path(filename).read_text(encoding="utf-8"))


@dataclass
class Version:
    """The latest released version as reported by the update service."""

    version: float = 0.0
    pubdate: str = ""
    update_content: str = ""
    url: str = ""