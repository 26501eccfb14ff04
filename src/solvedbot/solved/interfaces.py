"""
Interface contracts between the solved-post core and the hosting platform.

The core only talks to the platform through these protocols. The Discord
adapter lives in `solvedbot.platform`; tests use `solvedbot.testing.fakes`.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

from .models import RemovalPolicy


@dataclass(frozen=True)
class Identity:
    id: str
    name: str


@dataclass(frozen=True)
class ItemInfo:
    author_name: str
    exists: bool


@dataclass(frozen=True)
class CommentInfo:
    author_name: str
    body: str


@dataclass(frozen=True)
class Label:
    text: str
    background_color: str
    text_color: str


@runtime_checkable
class IdentityProvider(Protocol):
    """Who may act on an item.

    The current actor is not looked up here: each platform event carries it
    (on Discord, `interaction.user`) and the entry points receive it as an
    `Identity`, or `None` when the event has no user.
    """

    @abstractmethod
    async def is_moderator(self, collection_id: str, identity: Identity) -> bool:
        ...

    @abstractmethod
    async def item_author(self, item_id: str) -> Optional[Identity]:
        ...


@runtime_checkable
class ContentApi(Protocol):
    """Content mutation API. Methods raise `NotFoundError` / `ExternalActionFailure`."""

    @abstractmethod
    async def set_label(self, item_id: str, label: Label) -> None:
        ...

    @abstractmethod
    async def remove_item(self, item_id: str) -> None:
        ...

    @abstractmethod
    async def post_comment(self, item_id: str, text: str) -> str:
        ...

    @abstractmethod
    async def get_item(self, item_id: str) -> ItemInfo:
        ...

    @abstractmethod
    async def get_comment(self, item_id: str, comment_id: str) -> CommentInfo:
        ...


@runtime_checkable
class Publisher(Protocol):
    @abstractmethod
    async def write_page(self, collection_id: str, page_key: str, content: str, reason: str) -> None:
        ...


@runtime_checkable
class JobTransport(Protocol):
    @abstractmethod
    async def schedule_once(self, job_name: str, run_at: datetime, payload: dict[str, Any]) -> int:
        ...

    @abstractmethod
    async def schedule_cron(self, job_name: str, scope_key: str, cron_expr: str, payload: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def cancel_cron(self, job_name: str, scope_key: str) -> bool:
        ...


@runtime_checkable
class ConfigProvider(Protocol):
    @abstractmethod
    async def get_mode(self, collection_id: str) -> RemovalPolicy:
        ...
