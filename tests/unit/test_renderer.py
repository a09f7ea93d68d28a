"""Unit tests for PlainRenderer."""

from graphdialog.rendering.renderer import PlainRenderer


def test_rich_card_fields_and_templating():
    # Arrange
    renderer = PlainRenderer()
    data = {
        "title": "Hi {{%name%}}",
        "subtitle": "Your order",
        "images": ["http://img/1.png", "http://img/2.png"],
        "imageTap": {"action": "openUrl", "value": "http://shop"},
        "buttons": [
            {"action": "imBack", "value": "buy", "label": "Buy for {{%name%}}"},
            {"action": "launchRocket", "value": "x"},
        ],
    }

    # Act
    card = renderer.render(data, {"name": "Ana"})

    # Assert
    assert card == {
        "type": "richCard",
        "title": "Hi Ana",
        "subtitle": "Your order",
        "images": [
            {"url": "http://img/1.png", "tap": {"action": "openUrl", "value": "http://shop"}}
        ],
        "buttons": [{"action": "imBack", "value": "buy", "label": "Buy for Ana"}],
    }


def test_button_label_defaults_to_value():
    card = PlainRenderer().render_card({"buttons": [{"action": "postBack", "value": "yes"}]}, {})

    assert card["buttons"] == [{"action": "postBack", "value": "yes", "label": "yes"}]


def test_invalid_tap_is_dropped():
    card = PlainRenderer().render_card({"text": "x", "tap": {"action": "imBack"}}, {})

    assert card == {"type": "richCard", "text": "x"}


def test_carousel_renders_text_and_cards():
    data = {
        "text": "Pick one, {{%name%}}",
        "cards": [
            {"id": "c1", "data": {"title": "Margherita"}},
            {"id": "c2", "data": {"title": "Diavola"}},
        ],
    }

    messages = PlainRenderer().render(data, {"name": "Ana"})

    assert messages == [
        "Pick one, Ana",
        {
            "type": "carousel",
            "cards": [
                {"type": "richCard", "title": "Margherita"},
                {"type": "richCard", "title": "Diavola"},
            ],
        },
    ]


def test_empty_carousel():
    assert PlainRenderer().render({"cards": []}, {}) == []
