"""Pydantic models for the individual component variants of a message layout."""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from discord_gateway.security import sanitize_text

ATTACHMENT_SCHEME = "attachment://"
_MEDIA_SCHEMES = ("https://", "http://", ATTACHMENT_SCHEME)


class ComponentType(IntEnum):
    ACTION_ROW = 1
    BUTTON = 2
    STRING_SELECT = 3
    TEXT_INPUT = 4
    USER_SELECT = 5
    ROLE_SELECT = 6
    MENTIONABLE_SELECT = 7
    CHANNEL_SELECT = 8
    SECTION = 9
    TEXT_DISPLAY = 10
    THUMBNAIL = 11
    MEDIA_GALLERY = 12
    FILE = 13
    SEPARATOR = 14
    CONTAINER = 17


SELECT_TYPES = frozenset(
    {
        ComponentType.STRING_SELECT,
        ComponentType.USER_SELECT,
        ComponentType.ROLE_SELECT,
        ComponentType.MENTIONABLE_SELECT,
        ComponentType.CHANNEL_SELECT,
    }
)

TYPE_NAMES: Dict[str, ComponentType] = {
    "action_row": ComponentType.ACTION_ROW,
    "button": ComponentType.BUTTON,
    "select": ComponentType.STRING_SELECT,
    "string_select": ComponentType.STRING_SELECT,
    "text_input": ComponentType.TEXT_INPUT,
    "user_select": ComponentType.USER_SELECT,
    "role_select": ComponentType.ROLE_SELECT,
    "mentionable_select": ComponentType.MENTIONABLE_SELECT,
    "channel_select": ComponentType.CHANNEL_SELECT,
    "section": ComponentType.SECTION,
    "text": ComponentType.TEXT_DISPLAY,
    "text_display": ComponentType.TEXT_DISPLAY,
    "thumbnail": ComponentType.THUMBNAIL,
    "media_gallery": ComponentType.MEDIA_GALLERY,
    "image": ComponentType.MEDIA_GALLERY,
    "file": ComponentType.FILE,
    "separator": ComponentType.SEPARATOR,
    "container": ComponentType.CONTAINER,
}

BUTTON_STYLES = {"primary": 1, "secondary": 2, "success": 3, "danger": 4, "link": 5}
TEXT_INPUT_STYLES = {"short": 1, "paragraph": 2}
SEPARATOR_SPACING = {"small": 1, "large": 2}


def _clean(value: str | None, *, limit: int, field: str) -> str | None:
    if value is None:
        return None
    cleaned = sanitize_text(value)
    if len(cleaned) > limit:
        raise ValueError(f"{field} must be at most {limit} characters")
    return cleaned


def _media_url(value: str) -> str:
    url = value.strip()
    if not url.startswith(_MEDIA_SCHEMES):
        raise ValueError("media url must use https:// or attachment://")
    return url


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


class NodeModel(BaseModel):
    """Attributes of a single node, excluding its children."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_payload(self) -> Dict[str, Any]:
        return {}


class ButtonNode(NodeModel):
    label: str | None = None
    style: Literal["primary", "secondary", "success", "danger", "link"] = "primary"
    custom_id: str | None = None
    url: str | None = None
    emoji: str | None = None
    disabled: bool = False

    @field_validator("label")
    @classmethod
    def _clean_label(cls, value: str | None) -> str | None:
        return _clean(value, limit=80, field="label")

    @field_validator("custom_id")
    @classmethod
    def _clean_custom_id(cls, value: str | None) -> str | None:
        return _clean(value, limit=100, field="custom_id")

    @model_validator(mode="after")
    def _check_target(self):
        if self.style == "link":
            if not self.url or not self.url.startswith("https://"):
                raise ValueError("link buttons require an https url")
            if self.custom_id:
                raise ValueError("link buttons cannot carry a custom_id")
        else:
            if not self.custom_id:
                raise ValueError("interactive buttons require a custom_id")
            if self.url:
                raise ValueError("only link buttons may carry a url")
        if not self.label and not self.emoji:
            raise ValueError("buttons need a label or an emoji")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "style": BUTTON_STYLES[self.style],
                "label": self.label,
                "custom_id": self.custom_id,
                "url": self.url,
                "emoji": {"name": self.emoji} if self.emoji else None,
                "disabled": self.disabled,
            }
        )


class SelectOption(NodeModel):
    label: str
    value: str
    description: str | None = None
    emoji: str | None = None
    default: bool = False

    @field_validator("label", "value", "description")
    @classmethod
    def _clean_text(cls, value: str | None, info) -> str | None:
        return _clean(value, limit=100, field=info.field_name)

    def to_payload(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "label": self.label,
                "value": self.value,
                "description": self.description,
                "emoji": {"name": self.emoji} if self.emoji else None,
                "default": self.default,
            }
        )


class SelectNode(NodeModel):
    """User, role, mentionable and channel selects; string selects extend it."""

    custom_id: str
    placeholder: str | None = None
    min_values: int = Field(1, ge=0, le=25)
    max_values: int = Field(1, ge=1, le=25)
    disabled: bool = False
    channel_types: List[int] | None = None

    @field_validator("custom_id")
    @classmethod
    def _clean_custom_id(cls, value: str) -> str:
        cleaned = _clean(value, limit=100, field="custom_id")
        if not cleaned:
            raise ValueError("custom_id is required")
        return cleaned

    @field_validator("placeholder")
    @classmethod
    def _clean_placeholder(cls, value: str | None) -> str | None:
        return _clean(value, limit=150, field="placeholder")

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.min_values > self.max_values:
            raise ValueError("min_values cannot exceed max_values")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "custom_id": self.custom_id,
                "placeholder": self.placeholder,
                "min_values": self.min_values,
                "max_values": self.max_values,
                "disabled": self.disabled,
                "channel_types": self.channel_types,
            }
        )


class StringSelectNode(SelectNode):
    options: List[SelectOption] = Field(..., min_length=1, max_length=25)

    @model_validator(mode="after")
    def _check_options(self):
        if self.max_values > len(self.options):
            raise ValueError("max_values cannot exceed the number of options")
        return self

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["options"] = [option.to_payload() for option in self.options]
        return payload


class TextDisplayNode(NodeModel):
    content: str

    @field_validator("content")
    @classmethod
    def _clean_content(cls, value: str) -> str:
        cleaned = sanitize_text(value)
        if not cleaned:
            raise ValueError("content cannot be empty")
        return cleaned

    def to_payload(self) -> Dict[str, Any]:
        return {"content": self.content}


class ThumbnailNode(NodeModel):
    url: str
    description: str | None = None
    spoiler: bool = False

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return _media_url(value)

    @field_validator("description")
    @classmethod
    def _clean_description(cls, value: str | None) -> str | None:
        return _clean(value, limit=1024, field="description")

    def to_payload(self) -> Dict[str, Any]:
        return _drop_none({"media": {"url": self.url}, "description": self.description, "spoiler": self.spoiler})


class GalleryItem(ThumbnailNode):
    pass


class MediaGalleryNode(NodeModel):
    items: List[GalleryItem] = Field(..., min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _single_image(cls, value):
        # {"type": "image", "url": ..., "alt": ...} is shorthand for a one-item gallery
        if isinstance(value, dict) and "items" not in value and "url" in value:
            return {
                "items": [
                    {
                        "url": value["url"],
                        "description": value.get("alt") or value.get("description"),
                        "spoiler": value.get("spoiler", False),
                    }
                ]
            }
        return value

    def to_payload(self) -> Dict[str, Any]:
        return {"items": [item.to_payload() for item in self.items]}


class FileNode(NodeModel):
    url: str
    spoiler: bool = False

    @field_validator("url")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    def to_payload(self) -> Dict[str, Any]:
        return {"file": {"url": self.url}, "spoiler": self.spoiler}


class SeparatorNode(NodeModel):
    divider: bool = True
    spacing: Literal["small", "large"] = "small"

    def to_payload(self) -> Dict[str, Any]:
        return {"divider": self.divider, "spacing": SEPARATOR_SPACING[self.spacing]}


class ContainerNode(NodeModel):
    accent_color: int | None = Field(None, ge=0, le=0xFFFFFF)
    spoiler: bool = False

    @field_validator("accent_color", mode="before")
    @classmethod
    def _parse_color(cls, value):
        if isinstance(value, str):
            try:
                return int(value.lstrip("#"), 16)
            except ValueError as exc:
                raise ValueError("accent_color must be a hex colour") from exc
        return value

    def to_payload(self) -> Dict[str, Any]:
        return _drop_none({"accent_color": self.accent_color, "spoiler": self.spoiler})


class SectionNode(NodeModel):
    pass


class ActionRowNode(NodeModel):
    pass


class TextInputNode(NodeModel):
    custom_id: str
    label: str
    style: Literal["short", "paragraph"] = "short"
    required: bool = False
    min_length: int = Field(0, ge=0, le=4000)
    max_length: int = Field(4000, ge=1, le=4000)
    placeholder: str | None = None
    value: str | None = None

    @field_validator("style", mode="before")
    @classmethod
    def _style_from_number(cls, value):
        if isinstance(value, int):
            return {1: "short", 2: "paragraph"}.get(value, value)
        return value

    @field_validator("custom_id")
    @classmethod
    def _clean_custom_id(cls, value: str) -> str:
        cleaned = _clean(value, limit=100, field="custom_id")
        if not cleaned:
            raise ValueError("custom_id is required")
        return cleaned

    @field_validator("label")
    @classmethod
    def _clean_label(cls, value: str) -> str:
        cleaned = _clean(value, limit=45, field="label")
        if not cleaned:
            raise ValueError("label is required")
        return cleaned

    @field_validator("placeholder")
    @classmethod
    def _clean_placeholder(cls, value: str | None) -> str | None:
        return _clean(value, limit=100, field="placeholder")

    @field_validator("value")
    @classmethod
    def _clean_value(cls, value: str | None) -> str | None:
        return _clean(value, limit=4000, field="value")

    @model_validator(mode="after")
    def _check_lengths(self):
        if self.min_length > self.max_length:
            raise ValueError("min_length cannot exceed max_length")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return _drop_none(
            {
                "custom_id": self.custom_id,
                "label": self.label,
                "style": TEXT_INPUT_STYLES[self.style],
                "required": self.required,
                "min_length": self.min_length,
                "max_length": self.max_length,
                "placeholder": self.placeholder,
                "value": self.value,
            }
        )


class ModalNode(NodeModel):
    title: str
    custom_id: str

    @field_validator("title")
    @classmethod
    def _clean_title(cls, value: str) -> str:
        cleaned = _clean(value, limit=45, field="title")
        if not cleaned:
            raise ValueError("title is required")
        return cleaned

    @field_validator("custom_id")
    @classmethod
    def _clean_custom_id(cls, value: str) -> str:
        cleaned = _clean(value, limit=100, field="custom_id")
        if not cleaned:
            raise ValueError("custom_id is required")
        return cleaned


NODE_MODELS: Dict[ComponentType, type[NodeModel]] = {
    ComponentType.ACTION_ROW: ActionRowNode,
    ComponentType.BUTTON: ButtonNode,
    ComponentType.STRING_SELECT: StringSelectNode,
    ComponentType.TEXT_INPUT: TextInputNode,
    ComponentType.USER_SELECT: SelectNode,
    ComponentType.ROLE_SELECT: SelectNode,
    ComponentType.MENTIONABLE_SELECT: SelectNode,
    ComponentType.CHANNEL_SELECT: SelectNode,
    ComponentType.SECTION: SectionNode,
    ComponentType.TEXT_DISPLAY: TextDisplayNode,
    ComponentType.THUMBNAIL: ThumbnailNode,
    ComponentType.MEDIA_GALLERY: MediaGalleryNode,
    ComponentType.FILE: FileNode,
    ComponentType.SEPARATOR: SeparatorNode,
    ComponentType.CONTAINER: ContainerNode,
}

if set(NODE_MODELS) != set(ComponentType):  # pragma: no cover - import-time guard
    raise RuntimeError("Every component type needs a node model")
