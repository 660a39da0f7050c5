from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Iterable

from chatcommerce.models.chat_session import ChatSession


def _money(value: Any) -> float:
    return round(float(Decimal(str(value or 0))), 2)


@dataclass
class CartLine:
    product_id: str
    name: str
    unit_price: float
    quantity: int

    @property
    def line_total(self) -> float:
        return _money(self.unit_price * self.quantity)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["line_total"] = self.line_total
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        return cls(
            product_id=str(data["product_id"]),
            name=str(data.get("name") or ""),
            unit_price=_money(data.get("unit_price")),
            quantity=max(int(data.get("quantity") or 0), 0),
        )


def load_cart(session: ChatSession) -> list[CartLine]:
    lines = []
    for raw in session.cart or []:
        if not isinstance(raw, dict) or not raw.get("product_id"):
            continue
        line = CartLine.from_dict(raw)
        if line.quantity > 0:
            lines.append(line)
    return lines


def cart_total(lines: Iterable[CartLine]) -> float:
    return _money(sum(Decimal(str(line.line_total)) for line in lines))


def item_count(lines: Iterable[CartLine]) -> int:
    return sum(line.quantity for line in lines)


def store_cart(session: ChatSession, lines: list[CartLine]) -> None:
    """Write lines back and recompute the total from them; the total is never set any other way."""
    session.cart = [line.to_dict() for line in lines]
    session.cart_total = cart_total(lines)


def add_to_cart(
    session: ChatSession, *, product_id: str, name: str, unit_price: Any, quantity: int = 1
) -> list[CartLine]:
    lines = load_cart(session)
    for line in lines:
        if line.product_id == product_id:
            line.quantity += quantity
            break
    else:
        lines.append(CartLine(product_id=product_id, name=name, unit_price=_money(unit_price), quantity=quantity))
    store_cart(session, lines)
    return lines


def empty_cart(session: ChatSession) -> None:
    store_cart(session, [])


def format_money(value: Any) -> str:
    return f"₹{_money(value):,.2f}"


def format_cart_lines(lines: Iterable[CartLine]) -> str:
    return "\n".join(
        f"• {line.name} x{line.quantity} = {format_money(line.line_total)}" for line in lines
    )
