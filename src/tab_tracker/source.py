"""Host-side view of open tabs, queried when an event names an unknown tab."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Protocol


class ResourceGone(LookupError):
    """The host no longer knows the requested tab."""


@dataclass(slots=True)
class TabInfo:
    tab_id: int
    url: Optional[str]
    title: Optional[str] = None
    window_id: int = -1
    active: bool = False


class ResourceSource(Protocol):
    async def get_resource(self, tab_id: int) -> TabInfo: ...

    async def list_resources(self) -> list[TabInfo]: ...

    async def focused_container(self) -> Optional[int]: ...


class TabDirectory:
    """Latest reported truth about every open tab.

    Fed by the ingest endpoints; answers the collector's lookups for tabs it
    has not registered yet.
    """

    def __init__(self) -> None:
        self._tabs: dict[int, TabInfo] = {}
        self._focused_window: Optional[int] = None

    def observe(self, info: TabInfo) -> TabInfo:
        self._tabs[info.tab_id] = replace(info)
        return info

    def patch(
        self,
        tab_id: int,
        *,
        url: Optional[str] = None,
        title: Optional[str] = None,
        window_id: Optional[int] = None,
        active: Optional[bool] = None,
    ) -> TabInfo:
        info = self._tabs.get(tab_id) or TabInfo(tab_id=tab_id, url=None)
        if url is not None:
            info.url = url
        if title is not None:
            info.title = title
        if window_id is not None:
            info.window_id = window_id
        if active is not None:
            info.active = active
        self._tabs[tab_id] = info
        return replace(info)

    def activate(self, tab_id: int, window_id: int) -> None:
        for info in self._tabs.values():
            if info.window_id == window_id:
                info.active = info.tab_id == tab_id
        self.patch(tab_id, window_id=window_id, active=True)

    def forget(self, tab_id: int) -> None:
        self._tabs.pop(tab_id, None)

    def set_focus(self, window_id: Optional[int]) -> None:
        self._focused_window = window_id

    async def get_resource(self, tab_id: int) -> TabInfo:
        info = self._tabs.get(tab_id)
        if info is None:
            raise ResourceGone(f"No tab with id {tab_id}")
        return replace(info)

    async def list_resources(self) -> list[TabInfo]:
        return [replace(info) for info in self._tabs.values()]

    async def focused_container(self) -> Optional[int]:
        return self._focused_window
