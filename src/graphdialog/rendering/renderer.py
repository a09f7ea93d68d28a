"""Default renderer producing channel-neutral dictionaries for rich nodes."""

from collections.abc import Mapping
from typing import Any

from graphdialog.core.expression import replace_variables
from graphdialog.core.interfaces import ChannelMessage

_CARD_ACTIONS = frozenset({"openUrl", "imBack", "postBack", "showImage"})


class PlainRenderer:
    """Renders rich cards and carousels as plain dicts.

    Text fields get ``{{%var%}}`` substitution. Hosts that talk to a real
    channel supply their own Renderer.
    """

    def render(
        self,
        data: Mapping[str, Any],
        variables: Mapping[str, Any],
    ) -> ChannelMessage | list[ChannelMessage]:
        if "cards" in data:
            return self._render_carousel(data, variables)
        return self.render_card(data, variables)

    def render_card(self, data: Mapping[str, Any], variables: Mapping[str, Any]) -> dict[str, Any]:
        card: dict[str, Any] = {"type": "richCard"}
        for key in ("title", "subtitle", "text"):
            if data.get(key) is not None:
                card[key] = replace_variables(data[key], variables)

        images = list(data.get("images") or [])
        if images:
            image: dict[str, Any] = {"url": images[0]}
            if self._valid_tap(data.get("imageTap")):
                image["tap"] = dict(data["imageTap"])
            card["images"] = [image]

        if self._valid_tap(data.get("tap")):
            card["tap"] = dict(data["tap"])

        buttons = []
        for item in data.get("buttons") or []:
            if item.get("action") not in _CARD_ACTIONS:
                continue
            label = item.get("label") or item.get("value")
            buttons.append(
                {
                    "action": item["action"],
                    "value": item.get("value"),
                    "label": replace_variables(label, variables),
                }
            )
        if buttons:
            card["buttons"] = buttons
        return card

    def _render_carousel(
        self, data: Mapping[str, Any], variables: Mapping[str, Any]
    ) -> list[ChannelMessage]:
        messages: list[ChannelMessage] = []
        if data.get("text") is not None:
            messages.append(replace_variables(data["text"], variables))
        cards = [self.render_card(item.get("data") or {}, variables) for item in data["cards"]]
        if cards:
            messages.append({"type": "carousel", "cards": cards})
        return messages

    @staticmethod
    def _valid_tap(tap: Any) -> bool:
        return isinstance(tap, Mapping) and tap.get("action") in ("openUrl", "showImage")
