"""
Pizza order handlers.

Prices are fixed for the demo; a real shop would look them up.

Run with:
    graphdialog chat examples/pizza_order/graphdialog.yaml
"""

from typing import Any

from graphdialog import HandlerContext, register_handler, register_predicate

PRICES: dict[str, float] = {"Small": 8.5, "Medium": 11.0, "Large": 14.5}


def quote_order(context: HandlerContext, data: dict[str, Any]) -> dict[str, Any]:
    """Price the order from the collected size and count."""
    size = context.variables.get("size")
    count = context.variables.get("count") or 1
    total = round(PRICES.get(size, 0.0) * count, 2)
    return {"assignments": {"total": total}}


def positive_quantity(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


register_handler("quote_order")(quote_order)
register_predicate("positive_quantity")(positive_quantity)
