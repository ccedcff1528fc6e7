"""Tab bookkeeping for the application's pages."""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

from dstasks.models import Task

_MAX_TAB_NAME = 15
NEW_TASK_NAME = "新建任务"


def format_tab_name(name: str) -> str:
    """Pad a tab title, shortening names longer than 15 characters."""
    if len(name) > _MAX_TAB_NAME:
        return " " + name[:_MAX_TAB_NAME] + "...  "
    return " " + name + "  "


def new_task(
    address: str | None = None,
    user_agent: str = "",
    rng: random.Random | None = None,
) -> Task:
    """Create a fresh task with a random code."""
    rng = rng or random.Random()
    number = rng.randrange(100000, 999999)
    task = Task(name=NEW_TASK_NAME, code=f"code{number}", default_user_agent=user_agent)
    if address is not None:
        task.address_list = address.split("\n")
    return task


class PageKind(Enum):
    """The kinds of page that can live in a tab."""

    INDEX = "首页"
    SETTINGS = "设置"
    ABOUT = "关于"
    TASK_MANAGE = "任务管理"
    TASK = "task"
    TASK_DATA = "task data"


@dataclass(eq=False)
class TabPage:
    """One open tab."""

    kind: PageKind
    title: str
    task: Task | None = None
    task_name: str = ""
    task_code: str = ""


class TabSet:
    """An ordered set of tabs with a current selection."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._pages: list[TabPage] = []
        self._history: list[TabPage] = []
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self._pages)

    def __iter__(self) -> Iterator[TabPage]:
        return iter(self._pages)

    def __getitem__(self, index: int) -> TabPage:
        return self._pages[index]

    @property
    def current(self) -> TabPage | None:
        return self._history[-1] if self._history else None

    @property
    def current_index(self) -> int:
        page = self.current
        return -1 if page is None else self._pages.index(page)

    def _select(self, page: TabPage) -> None:
        if page in self._history:
            self._history.remove(page)
        self._history.append(page)

    def _add(self, page: TabPage) -> TabPage:
        self._pages.append(page)
        self._select(page)
        return page

    def _create_single(self, kind: PageKind) -> TabPage:
        for page in self._pages:
            if page.kind is kind:
                self._select(page)
                return page
        return self._add(TabPage(kind, format_tab_name(kind.value)))

    def create_index(self) -> TabPage:
        """Open the home page, or switch to it if already open."""
        return self._create_single(PageKind.INDEX)

    def create_settings(self) -> TabPage:
        """Open the settings page, or switch to it if already open."""
        return self._create_single(PageKind.SETTINGS)

    def create_about(self) -> TabPage:
        """Open the about page, or switch to it if already open."""
        return self._create_single(PageKind.ABOUT)

    def create_task_manage(self) -> TabPage:
        """Open the task management page, or switch to it if already open."""
        return self._create_single(PageKind.TASK_MANAGE)

    def create_task(self, address: str | None = None, user_agent: str = "") -> TabPage:
        """Open a tab for a new task; any number may be open."""
        return self.open_task(new_task(address, user_agent, self._rng))

    def open_task(self, task: Task) -> TabPage:
        """Open a tab editing the given task."""
        return self._add(TabPage(PageKind.TASK, format_tab_name(task.name), task=task))

    def open_task_data(self, task_name: str, task_code: str) -> TabPage:
        """Open a tab showing the data collected by a task."""
        return self._add(
            TabPage(
                PageKind.TASK_DATA,
                format_tab_name(task_name),
                task_name=task_name,
                task_code=task_code,
            )
        )

    def rename(self, page: TabPage, name: str) -> None:
        """Change the title of an open tab."""
        if page not in self._pages:
            raise ValueError("page is not open")
        page.title = format_tab_name(name)

    def close_tab(self, index: int) -> bool:
        """Close the tab at index; the home page cannot be closed.

        Returns True if a tab was removed.
        """
        page = self._pages[index]
        if page.kind is PageKind.INDEX:
            return False
        del self._pages[index]
        self._history.remove(page)
        return True