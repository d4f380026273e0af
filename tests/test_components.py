"""Tests for the Components V2 tree builder."""

import pytest

from discord_gateway.components import (
    IS_COMPONENTS_V2,
    ComponentTreeBuilder,
    ComponentType,
    build_component_tree,
    build_modal,
)
from discord_gateway.errors import InvalidRequest, StructuralFailure, StructuralValidationError


def _text(content: str = "x") -> dict:
    return {"type": "text_display", "content": content}


def _button(custom_id: str = "btn") -> dict:
    return {"type": "button", "label": "Go", "style": "primary", "customId": custom_id}


def _failure(nodes, **kwargs) -> StructuralValidationError:
    with pytest.raises(StructuralValidationError) as err:
        build_component_tree(nodes, **kwargs)
    return err.value


def test_container_message_is_built_with_v2_flag():
    tree = build_component_tree(
        [
            {
                "type": "container",
                "accentColor": "#5865F2",
                "children": [
                    _text("Hello"),
                    {"type": "separator"},
                    {"type": "action_row", "children": [_button("a"), _button("b")]},
                ],
            }
        ]
    )

    payload = tree.to_message_payload()
    container = payload["components"][0]

    assert payload["flags"] == IS_COMPONENTS_V2 == 32768
    assert container["type"] == ComponentType.CONTAINER
    assert container["accent_color"] == 0x5865F2
    assert [child["type"] for child in container["components"]] == [10, 14, 1]
    assert container["components"][2]["components"][0]["custom_id"] == "a"
    assert tree.stats() == {"componentCount": 6, "textDisplayChars": 5, "mediaGalleryItems": 0}


def test_forty_nodes_are_accepted_and_the_forty_first_is_rejected():
    assert build_component_tree([_text() for _ in range(40)]).node_count == 40

    failure = _failure([_text() for _ in range(41)])

    assert failure.reason is StructuralFailure.TOO_MANY_NODES
    assert failure.path == "components[40]"


def test_text_budget_boundary():
    assert build_component_tree([_text("a" * 4000)]).text_chars == 4000

    failure = _failure([_text("a" * 2000), _text("b" * 2001)])

    assert failure.reason is StructuralFailure.TEXT_BUDGET_EXCEEDED
    assert failure.path == "components[1]"


def test_leading_content_counts_against_text_budget():
    failure = _failure([_text("b" * 3999)], content="ab")

    assert failure.reason is StructuralFailure.TEXT_BUDGET_EXCEEDED


def test_gallery_budget_boundary():
    def gallery(count: int) -> dict:
        return {
            "type": "media_gallery",
            "items": [{"url": f"https://example.com/{index}.png"} for index in range(count)],
        }

    assert build_component_tree([gallery(10)]).gallery_items == 10

    failure = _failure([gallery(6), gallery(5)])

    assert failure.reason is StructuralFailure.GALLERY_BUDGET_EXCEEDED
    assert failure.path == "components[1].items[4]"


def test_image_shorthand_becomes_single_item_gallery():
    tree = build_component_tree([{"type": "image", "url": "https://example.com/a.png", "alt": "A"}])

    gallery = tree.components[0]
    assert gallery["type"] == ComponentType.MEDIA_GALLERY
    assert gallery["items"] == [{"media": {"url": "https://example.com/a.png"}, "description": "A", "spoiler": False}]


@pytest.mark.parametrize(
    "section",
    [
        {"type": "section", "children": [_text()]},
        {
            "type": "section",
            "children": [_text()],
            "accessories": [
                {"type": "thumbnail", "url": "https://example.com/a.png"},
                _button(),
            ],
        },
    ],
)
def test_section_requires_exactly_one_accessory(section):
    failure = _failure([section])

    assert failure.reason is StructuralFailure.MISSING_ACCESSORY
    assert failure.path == "components[0]"


def test_section_with_one_accessory_is_accepted():
    tree = build_component_tree(
        [
            {
                "type": "section",
                "children": [_text("one"), _text("two")],
                "accessory": {"type": "thumbnail", "url": "https://example.com/a.png"},
            }
        ]
    )

    section = tree.components[0]
    assert section["accessory"]["type"] == ComponentType.THUMBNAIL
    assert len(section["components"]) == 2


def test_section_rejects_unsupported_accessory():
    failure = _failure([{"type": "section", "children": [_text()], "accessory": _text()}])

    assert failure.reason is StructuralFailure.ILLEGAL_CONTAINMENT
    assert failure.path == "components[0].accessory"


def test_button_at_root_is_illegal():
    failure = _failure([_button()])

    assert failure.reason is StructuralFailure.ILLEGAL_CONTAINMENT


def test_container_cannot_nest_container():
    failure = _failure([{"type": "container", "children": [{"type": "container", "children": [_text()]}]}])

    assert failure.reason is StructuralFailure.ILLEGAL_CONTAINMENT
    assert failure.path == "components[0].children[0]"


def test_action_row_rejects_select_mixed_with_buttons():
    select = {
        "type": "select",
        "customId": "pick",
        "options": [{"label": "A", "value": "a"}],
    }

    failure = _failure([{"type": "action_row", "children": [_button(), select]}])

    assert failure.reason is StructuralFailure.ILLEGAL_CONTAINMENT
    assert failure.path == "components[0].children[1]"


def test_action_row_rejects_sixth_button():
    failure = _failure([{"type": "action_row", "children": [_button(str(index)) for index in range(6)]}])

    assert failure.path == "components[0].children[5]"


def test_second_top_level_container_is_rejected():
    container = {"type": "container", "children": [_text()]}

    failure = _failure([container, container])

    assert failure.reason is StructuralFailure.MULTIPLE_VIEWS


def test_file_requires_registered_attachment():
    node = {"type": "file", "url": "attachment://report.pdf"}

    tree = build_component_tree([node], attachments=["report.pdf"])
    assert tree.components[0]["file"] == {"url": "attachment://report.pdf"}

    failure = _failure([node], attachments=["other.pdf"])
    assert failure.reason is StructuralFailure.UNREGISTERED_ATTACHMENT

    failure = _failure([{"type": "file", "url": "https://example.com/report.pdf"}])
    assert failure.reason is StructuralFailure.UNREGISTERED_ATTACHMENT


def test_thumbnail_attachment_must_be_registered():
    section = {
        "type": "section",
        "children": [_text()],
        "accessory": {"type": "thumbnail", "url": "attachment://logo.png"},
    }

    assert build_component_tree([section], attachments=[{"filename": "logo.png"}]).node_count == 3
    assert _failure([section]).reason is StructuralFailure.UNREGISTERED_ATTACHMENT


@pytest.mark.parametrize("attachments", [5, "report.pdf", {"filename": "report.pdf"}])
def test_attachments_must_be_a_list(attachments):
    with pytest.raises(InvalidRequest):
        build_component_tree([_text()], attachments=attachments)


def test_invalid_node_attributes_are_reported_with_path():
    link_with_id = {"type": "button", "style": "link", "url": "https://example.com", "customId": "x", "label": "L"}

    failure = _failure([{"type": "action_row", "children": [link_with_id]}])

    assert failure.reason is StructuralFailure.INVALID_NODE
    assert failure.path == "components[0].children[0]"


def test_unknown_type_is_invalid():
    assert _failure([{"type": "marquee"}]).reason is StructuralFailure.INVALID_NODE


def test_empty_message_is_rejected():
    assert _failure([]).reason is StructuralFailure.INVALID_NODE


def test_builder_can_be_driven_incrementally():
    builder = ComponentTreeBuilder()
    builder.add(_text("first"))
    builder.add({"type": "separator", "spacing": "large"})

    tree = builder.build()

    assert [component["type"] for component in tree.components] == [10, 14]
    assert tree.components[1]["spacing"] == 2


def test_text_content_is_sanitised():
    tree = build_component_tree([_text("<script>x</script>")])

    assert tree.components[0]["content"] == "&lt;script&gt;x&lt;/script&gt;"


def test_modal_wraps_each_input_in_an_action_row():
    modal = build_modal(
        {
            "title": "Feedback",
            "customId": "feedback",
            "components": [
                {"customId": "name", "label": "Name", "style": "short"},
                {"type": "text_input", "customId": "body", "label": "Body", "style": "paragraph"},
            ],
        }
    )

    assert modal["title"] == "Feedback"
    assert modal["custom_id"] == "feedback"
    assert [row["type"] for row in modal["components"]] == [1, 1]
    assert modal["components"][1]["components"][0]["style"] == 2
    assert modal["components"][0]["components"][0]["type"] == ComponentType.TEXT_INPUT


def test_modal_rejects_too_many_inputs_and_non_inputs():
    inputs = [{"customId": f"f{index}", "label": "F"} for index in range(6)]

    with pytest.raises(StructuralValidationError):
        build_modal({"title": "T", "customId": "m", "components": inputs})

    with pytest.raises(StructuralValidationError) as err:
        build_modal({"title": "T", "customId": "m", "components": [_button()]})

    assert err.value.reason is StructuralFailure.ILLEGAL_CONTAINMENT
