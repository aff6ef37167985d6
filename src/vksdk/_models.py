"""
Typed models for API answers.

Models are plain dataclasses. The JSON member a field is read from is given
by `field(metadata={"json": "..."})` and defaults to the field name. Only a
representative set of resources is provided; any dataclass following the
same conventions can be used with `VkApi.call_as()`.

Example:
    >>> users = api.call_as("users.get", VkParameters({"user_ids": 1}), list[User])
    >>> users[0].first_name
    'Pavel'
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Self, TypeVar

if TYPE_CHECKING:
    from vksdk._converters import ConverterSet
    from vksdk._envelope import VkResponse

T = TypeVar("T")


# =============================================================================
# Enums
# =============================================================================


class Language(Enum):
    """Languages accepted by the `lang` parameter."""

    RU = "ru"
    UK = "uk"
    BE = "be"
    EN = "en"
    ES = "es"
    FI = "fi"
    DE = "de"
    IT = "it"


class Sex(Enum):
    UNKNOWN = 0
    FEMALE = 1
    MALE = 2


# =============================================================================
# Base Classes
# =============================================================================


@dataclass
class Model:
    """
    Base class for typed models.

    Provides the explicit constructor from a response envelope.
    """

    @classmethod
    def from_response(cls, response: VkResponse, converters: ConverterSet | None = None) -> Self | None:
        """
        Build an instance from a response envelope.

        Returns:
            The model, or None when the envelope holds no value.

        Raises:
            DeserializationError: If the node does not fit the model.
        """
        if response is None or not response.has_value:
            return None
        return response.to_model(cls, converters)


@dataclass
class VkCollection(Generic[T]):
    """
    A page of items with the total count reported by the provider.

    Normalized from both `{"count": n, "items": [...]}` and bare arrays.
    """

    count: int = 0
    items: list[T] = field(default_factory=list)

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> T:
        return self.items[index]


@dataclass
class Attachment(Model):
    """
    Base class of the objects attached to messages and posts.

    Subclasses register under the provider's type name with
    `class Video(MediaAttachment, alias="video")`, which lets the attachment
    converter resolve `{"type": "video", "video": {...}}` nodes.
    """

    _registry: ClassVar[dict[str, type[Attachment]]] = {}
    alias: ClassVar[str] = ""

    def __init_subclass__(cls, alias: str | None = None, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        if alias:
            cls.alias = alias
            Attachment._registry[alias] = cls

    @classmethod
    def resolve(cls, alias: str) -> type[Attachment] | None:
        return Attachment._registry.get(alias)


@dataclass
class UnknownAttachment(Attachment):
    """An attachment of a type this package has no model for."""

    type: str = ""
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class MediaAttachment(Attachment):
    """Attachment identified by owner and id."""

    id: int | None = None
    owner_id: int | None = None
    access_key: str | None = None

    def __str__(self) -> str:
        key = f"_{self.access_key}" if self.access_key else ""
        return f"{self.alias}{self.owner_id}_{self.id}{key}"


# =============================================================================
# Resources
# =============================================================================


@dataclass
class Likes(Model):
    count: int = 0
    user_likes: bool = False
    can_like: bool = False
    can_publish: bool = False


@dataclass
class PhotoSize(Model):
    type: str = ""
    url: str = ""
    width: int = 0
    height: int = 0


@dataclass
class Video(MediaAttachment, alias="video"):
    title: str | None = None
    description: str | None = None
    duration: int | None = None
    photo_130: str | None = None
    photo_320: str | None = None
    photo_640: str | None = None
    photo_800: str | None = None
    photo_1280: str | None = None
    first_frame_130: str | None = None
    first_frame_320: str | None = None
    first_frame_640: str | None = None
    first_frame_800: str | None = None
    first_frame_1280: str | None = None
    date: datetime | None = None
    adding_date: datetime | None = None
    views: int | None = None
    comments: int | None = None
    player: str | None = None
    platform: str | None = None
    can_edit: bool | None = None
    can_add: bool | None = None
    is_private: bool | None = None
    processing: bool | None = None
    live: bool | None = None
    upcoming: bool | None = None
    is_favorite: bool = False
    can_comment: bool | None = None
    can_repost: bool | None = None
    likes: Likes | None = None
    repeat: bool | None = None
    album_id: int | None = None
    upload_url: str | None = None
    width: int | None = None
    height: int | None = None


@dataclass
class Photo(MediaAttachment, alias="photo"):
    album_id: int | None = None
    user_id: int | None = None
    text: str | None = None
    date: datetime | None = None
    sizes: list[PhotoSize] = field(default_factory=list)


@dataclass
class Link(Attachment, alias="link"):
    url: str = ""
    title: str | None = None
    caption: str | None = None
    description: str | None = None


@dataclass
class User(Model):
    id: int = 0
    first_name: str = ""
    last_name: str = ""
    sex: Sex | None = None
    screen_name: str | None = None
    photo_100: str | None = None
    online: bool = False
    deactivated: str | None = None


@dataclass
class Message(Model):
    id: int = 0
    date: datetime | None = None
    peer_id: int | None = None
    from_id: int | None = None
    text: str = ""
    out: bool = False
    conversation_message_id: int | None = None
    attachments: list[Attachment] = field(default_factory=list)
    fwd_messages: list[Message] = field(default_factory=list)


@dataclass
class RecentCalls(Model):
    """Answer of `messages.getRecentCalls`."""

    count: int = 0
    messages: list[Message] = field(default_factory=list, metadata={"json": "items"})
    profiles: list[User] = field(default_factory=list)
    groups: list[dict[str, Any]] = field(default_factory=list)
