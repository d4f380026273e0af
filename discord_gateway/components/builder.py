"""Incremental construction and validation of Components V2 message trees."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Sequence

from pydantic import ValidationError

from discord_gateway.errors import InvalidRequest, StructuralFailure, StructuralValidationError

from .nodes import (
    ATTACHMENT_SCHEME,
    NODE_MODELS,
    SELECT_TYPES,
    TYPE_NAMES,
    ComponentType,
    ModalNode,
    NodeModel,
)

IS_COMPONENTS_V2 = 1 << 15
MAX_ROW_BUTTONS = 5
MAX_SECTION_TEXTS = 3
MAX_MODAL_INPUTS = 5

ACCESSORY_TYPES = frozenset({ComponentType.BUTTON, ComponentType.THUMBNAIL})

# Parent -> legal child variants; ``None`` is the message root.
ALLOWED_CHILDREN: Mapping[ComponentType | None, FrozenSet[ComponentType]] = {
    None: frozenset(
        {
            ComponentType.ACTION_ROW,
            ComponentType.SECTION,
            ComponentType.TEXT_DISPLAY,
            ComponentType.MEDIA_GALLERY,
            ComponentType.FILE,
            ComponentType.SEPARATOR,
            ComponentType.CONTAINER,
        }
    ),
    ComponentType.CONTAINER: frozenset(
        {
            ComponentType.ACTION_ROW,
            ComponentType.TEXT_DISPLAY,
            ComponentType.SECTION,
            ComponentType.MEDIA_GALLERY,
            ComponentType.SEPARATOR,
            ComponentType.FILE,
        }
    ),
    ComponentType.ACTION_ROW: frozenset({ComponentType.BUTTON}) | SELECT_TYPES,
    ComponentType.SECTION: frozenset({ComponentType.TEXT_DISPLAY}),
}


@dataclass(frozen=True)
class ComponentLimits:
    max_nodes: int = 40
    max_text_chars: int = 4000
    max_gallery_items: int = 10


DEFAULT_LIMITS = ComponentLimits()


@dataclass
class ComponentTree:
    """Validated top-level components plus the running aggregate counters."""

    components: List[Dict[str, Any]] = field(default_factory=list)
    attachments: FrozenSet[str] = frozenset()
    node_count: int = 0
    text_chars: int = 0
    gallery_items: int = 0

    def stats(self) -> Dict[str, int]:
        return {
            "componentCount": self.node_count,
            "textDisplayChars": self.text_chars,
            "mediaGalleryItems": self.gallery_items,
        }

    def to_message_payload(self) -> Dict[str, Any]:
        return {"flags": IS_COMPONENTS_V2, "components": list(self.components)}


def _attachment_names(attachments: Iterable[Any]) -> FrozenSet[str]:
    if not attachments:
        return frozenset()
    if not isinstance(attachments, (list, tuple, set, frozenset)):
        raise InvalidRequest("attachments must be a list")

    names = set()
    for attachment in attachments:
        if isinstance(attachment, str):
            name = attachment
        elif isinstance(attachment, Mapping):
            name = str(attachment.get("filename") or attachment.get("name") or "")
        else:
            name = ""
        if name.strip():
            names.add(name.strip())
    return frozenset(names)


def _children_of(raw: Mapping[str, Any]) -> Sequence[Any]:
    children = raw.get("children")
    if children is None:
        children = raw.get("components")
    if children is None:
        return []
    if not isinstance(children, list):
        return [children]
    return children


def resolve_type(raw: Any, path: str) -> ComponentType:
    """Map a node descriptor's ``type`` onto a ``ComponentType``."""

    if not isinstance(raw, Mapping):
        raise StructuralValidationError(StructuralFailure.INVALID_NODE, path, "node must be an object")

    declared = raw.get("type")
    if isinstance(declared, str) and declared.strip().lower() in TYPE_NAMES:
        return TYPE_NAMES[declared.strip().lower()]
    if isinstance(declared, int) and not isinstance(declared, bool):
        try:
            return ComponentType(declared)
        except ValueError:
            pass
    raise StructuralValidationError(StructuralFailure.INVALID_NODE, path, f"unknown component type {declared!r}")


def parse_node(ctype: ComponentType, raw: Mapping[str, Any], path: str) -> NodeModel:
    try:
        return NODE_MODELS[ctype].model_validate(raw)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "__root__")
        detail = first.get("msg", "invalid node")
        if location:
            detail = f"{location}: {detail}"
        raise StructuralValidationError(StructuralFailure.INVALID_NODE, path, detail) from exc


class ComponentTreeBuilder:
    """Build a component tree one insertion at a time.

    Every insertion is checked against the containment table and the
    aggregate budgets before the builder descends into the node's children,
    so an oversized or malformed layout is rejected at the first offending
    node instead of after the whole tree has been materialised.
    """

    def __init__(self, *, attachments: Iterable[Any] = (), limits: ComponentLimits = DEFAULT_LIMITS) -> None:
        self._limits = limits
        self._tree = ComponentTree(attachments=_attachment_names(attachments))
        self._views = 0
        self._builders: Dict[ComponentType, Callable[[Mapping[str, Any], NodeModel, str], Dict[str, Any]]] = {
            ComponentType.ACTION_ROW: self._build_action_row,
            ComponentType.BUTTON: self._build_leaf,
            ComponentType.STRING_SELECT: self._build_leaf,
            ComponentType.TEXT_INPUT: self._build_leaf,
            ComponentType.USER_SELECT: self._build_leaf,
            ComponentType.ROLE_SELECT: self._build_leaf,
            ComponentType.MENTIONABLE_SELECT: self._build_leaf,
            ComponentType.CHANNEL_SELECT: self._build_leaf,
            ComponentType.SECTION: self._build_section,
            ComponentType.TEXT_DISPLAY: self._build_text_display,
            ComponentType.THUMBNAIL: self._build_media_leaf,
            ComponentType.MEDIA_GALLERY: self._build_media_gallery,
            ComponentType.FILE: self._build_file,
            ComponentType.SEPARATOR: self._build_leaf,
            ComponentType.CONTAINER: self._build_container,
        }

    @property
    def tree(self) -> ComponentTree:
        return self._tree

    def add(self, raw: Any, *, path: str | None = None) -> Dict[str, Any]:
        """Validate *raw* as a new top-level component and append it."""

        path = path or f"components[{len(self._tree.components)}]"
        payload = self._insert(raw, parent=None, path=path)
        self._tree.components.append(payload)
        return payload

    def build(self) -> ComponentTree:
        if not self._tree.components:
            raise StructuralValidationError(StructuralFailure.INVALID_NODE, "components", "message has no components")
        return self._tree

    # insertion ---------------------------------------------------------------

    def _insert(self, raw: Any, *, parent: ComponentType | None, path: str) -> Dict[str, Any]:
        ctype = resolve_type(raw, path)
        self._check_containment(parent, ctype, path)
        if parent is None and ctype is ComponentType.CONTAINER:
            if self._views >= 1:
                raise StructuralValidationError(
                    StructuralFailure.MULTIPLE_VIEWS, path, "a message can carry a single top-level container"
                )
            self._views += 1
        return self._attach(ctype, raw, path)

    def _attach(self, ctype: ComponentType, raw: Mapping[str, Any], path: str) -> Dict[str, Any]:
        node = parse_node(ctype, raw, path)
        self._count_node(path)
        return self._builders[ctype](raw, node, path) | {"type": int(ctype)}

    def _check_containment(self, parent: ComponentType | None, child: ComponentType, path: str) -> None:
        allowed = ALLOWED_CHILDREN.get(parent, frozenset())
        if child not in allowed:
            where = "the message root" if parent is None else parent.name.lower()
            raise StructuralValidationError(
                StructuralFailure.ILLEGAL_CONTAINMENT,
                path,
                f"{child.name.lower()} is not allowed inside {where}",
            )

    def _count_node(self, path: str) -> None:
        self._tree.node_count += 1
        if self._tree.node_count > self._limits.max_nodes:
            raise StructuralValidationError(
                StructuralFailure.TOO_MANY_NODES,
                path,
                f"a message may contain at most {self._limits.max_nodes} components",
            )

    def _count_text(self, length: int, path: str) -> None:
        self._tree.text_chars += length
        if self._tree.text_chars > self._limits.max_text_chars:
            raise StructuralValidationError(
                StructuralFailure.TEXT_BUDGET_EXCEEDED,
                path,
                f"text displays may hold at most {self._limits.max_text_chars} characters in total",
            )

    def _count_gallery_item(self, path: str) -> None:
        self._tree.gallery_items += 1
        if self._tree.gallery_items > self._limits.max_gallery_items:
            raise StructuralValidationError(
                StructuralFailure.GALLERY_BUDGET_EXCEEDED,
                path,
                f"media galleries may hold at most {self._limits.max_gallery_items} items in total",
            )

    def _check_attachment(self, url: str, path: str, *, required: bool) -> None:
        if not url.startswith(ATTACHMENT_SCHEME):
            if required:
                raise StructuralValidationError(
                    StructuralFailure.UNREGISTERED_ATTACHMENT,
                    path,
                    "file components must reference an attachment:// upload",
                )
            return
        name = url[len(ATTACHMENT_SCHEME):]
        if name not in self._tree.attachments:
            raise StructuralValidationError(
                StructuralFailure.UNREGISTERED_ATTACHMENT,
                path,
                f"attachment '{name}' was not registered with this message",
            )

    # per-variant builders ------------------------------------------------------

    def _build_leaf(self, raw: Mapping[str, Any], node: NodeModel, path: str) -> Dict[str, Any]:
        return node.to_payload()

    def _build_text_display(self, raw: Mapping[str, Any], node: NodeModel, path: str) -> Dict[str, Any]:
        payload = node.to_payload()
        self._count_text(len(payload["content"]), path)
        return payload

    def _build_media_leaf(self, raw: Mapping[str, Any], node: NodeModel, path: str) -> Dict[str, Any]:
        payload = node.to_payload()
        self._check_attachment(payload["media"]["url"], path, required=False)
        return payload

    def _build_media_gallery(self, raw: Mapping[str, Any], node: NodeModel, path: str) -> Dict[str, Any]:
        payload = node.to_payload()
        for index, item in enumerate(payload["items"]):
            item_path = f"{path}.items[{index}]"
            self._count_gallery_item(item_path)
            self._check_attachment(item["media"]["url"], item_path, required=False)
        return payload

    def _build_file(self, raw: Mapping[str, Any], node: NodeModel, path: str) -> Dict[str, Any]:
        payload = node.to_payload()
        self._check_attachment(payload["file"]["url"], path, required=True)
        return payload

    def _build_container(self, raw: Mapping[str, Any], node: NodeModel, path: str) -> Dict[str, Any]:
        children = _children_of(raw)
        if not children:
            raise StructuralValidationError(
                StructuralFailure.ILLEGAL_CONTAINMENT, path, "a container needs at least one child"
            )
        payload = node.to_payload()
        payload["components"] = [
            self._insert(child, parent=ComponentType.CONTAINER, path=f"{path}.children[{index}]")
            for index, child in enumerate(children)
        ]
        return payload

    def _build_action_row(self, raw: Mapping[str, Any], node: NodeModel, path: str) -> Dict[str, Any]:
        children = _children_of(raw)
        if not children:
            raise StructuralValidationError(
                StructuralFailure.ILLEGAL_CONTAINMENT, path, "an action row needs at least one component"
            )

        built: List[Dict[str, Any]] = []
        has_select = False
        for index, child in enumerate(children):
            child_path = f"{path}.children[{index}]"
            ctype = resolve_type(child, child_path)
            if ctype in SELECT_TYPES:
                has_select = True
            if has_select and index > 0:
                raise StructuralValidationError(
                    StructuralFailure.ILLEGAL_CONTAINMENT,
                    child_path,
                    "a select menu must be the only component in its action row",
                )
            if index >= MAX_ROW_BUTTONS:
                raise StructuralValidationError(
                    StructuralFailure.ILLEGAL_CONTAINMENT,
                    child_path,
                    f"an action row holds at most {MAX_ROW_BUTTONS} buttons",
                )
            built.append(self._insert(child, parent=ComponentType.ACTION_ROW, path=child_path))

        return {"components": built}

    def _build_section(self, raw: Mapping[str, Any], node: NodeModel, path: str) -> Dict[str, Any]:
        accessories = raw.get("accessories")
        if accessories is None:
            accessory = raw.get("accessory")
            accessories = [] if accessory is None else accessory
        if not isinstance(accessories, list):
            accessories = [accessories]
        if len(accessories) != 1:
            raise StructuralValidationError(
                StructuralFailure.MISSING_ACCESSORY,
                path,
                f"a section needs exactly one accessory, got {len(accessories)}",
            )

        texts = _children_of(raw)
        if not 1 <= len(texts) <= MAX_SECTION_TEXTS:
            raise StructuralValidationError(
                StructuralFailure.ILLEGAL_CONTAINMENT,
                path,
                f"a section holds between 1 and {MAX_SECTION_TEXTS} text displays",
            )

        components = [
            self._insert(child, parent=ComponentType.SECTION, path=f"{path}.children[{index}]")
            for index, child in enumerate(texts)
        ]

        accessory_path = f"{path}.accessory"
        accessory_type = resolve_type(accessories[0], accessory_path)
        if accessory_type not in ACCESSORY_TYPES:
            raise StructuralValidationError(
                StructuralFailure.ILLEGAL_CONTAINMENT,
                accessory_path,
                f"{accessory_type.name.lower()} cannot be a section accessory",
            )
        return {"components": components, "accessory": self._attach(accessory_type, accessories[0], accessory_path)}


def build_component_tree(
    nodes: Sequence[Any],
    *,
    content: str | None = None,
    attachments: Iterable[Any] = (),
    limits: ComponentLimits = DEFAULT_LIMITS,
) -> ComponentTree:
    """Build a validated tree from a message description.

    Components V2 messages cannot carry plain ``content``, so it becomes a
    leading text display that counts against the same budgets.
    """

    builder = ComponentTreeBuilder(attachments=attachments, limits=limits)
    if content:
        builder.add({"type": "text_display", "content": content})
    for node in nodes or ():
        builder.add(node)
    return builder.build()


def build_modal(raw: Any) -> Dict[str, Any]:
    """Return a modal payload with one text input per action row."""

    if not isinstance(raw, Mapping):
        raise StructuralValidationError(StructuralFailure.INVALID_NODE, "modal", "modal must be an object")

    try:
        modal = ModalNode.model_validate(raw)
    except ValidationError as exc:
        raise StructuralValidationError(
            StructuralFailure.INVALID_NODE, "modal", exc.errors()[0].get("msg", "invalid modal")
        ) from exc

    inputs = _children_of(raw)
    if not 1 <= len(inputs) <= MAX_MODAL_INPUTS:
        raise StructuralValidationError(
            StructuralFailure.ILLEGAL_CONTAINMENT,
            "modal.components",
            f"a modal holds between 1 and {MAX_MODAL_INPUTS} text inputs",
        )

    rows: List[Dict[str, Any]] = []
    for index, item in enumerate(inputs):
        path = f"modal.components[{index}]"
        if isinstance(item, Mapping) and "type" not in item:
            item = {**item, "type": "text_input"}
        if resolve_type(item, path) is not ComponentType.TEXT_INPUT:
            raise StructuralValidationError(
                StructuralFailure.ILLEGAL_CONTAINMENT, path, "modals may only contain text inputs"
            )
        text_input = parse_node(ComponentType.TEXT_INPUT, item, path)
        rows.append(
            {
                "type": int(ComponentType.ACTION_ROW),
                "components": [text_input.to_payload() | {"type": int(ComponentType.TEXT_INPUT)}],
            }
        )

    return {"title": modal.title, "custom_id": modal.custom_id, "components": rows}
