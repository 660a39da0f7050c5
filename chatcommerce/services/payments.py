from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from chatcommerce.services.bot_config import PaymentSettings


class PaymentMethod(str, Enum):
    COD = "COD"
    ONLINE = "ONLINE"
    CREDIT = "CREDIT"


PAYMENT_ACTIONS = {
    "pay_cod": PaymentMethod.COD,
    "pay_online": PaymentMethod.ONLINE,
    "pay_credit": PaymentMethod.CREDIT,
}

_BUTTON_TITLES = {
    PaymentMethod.COD: "💵 Cash on Delivery",
    PaymentMethod.ONLINE: "💳 Pay Online",
    PaymentMethod.CREDIT: "📒 Credit",
}


@dataclass(frozen=True)
class PaymentResolution:
    # "unavailable" | "selected" | "prompt"
    status: str
    method: PaymentMethod | None = None
    credit_days: int | None = None
    options: tuple[PaymentMethod, ...] = ()


def enabled_methods(settings: PaymentSettings) -> list[PaymentMethod]:
    methods = []
    if settings.accept_cod:
        methods.append(PaymentMethod.COD)
    if settings.accept_online:
        methods.append(PaymentMethod.ONLINE)
    if settings.accept_credit:
        methods.append(PaymentMethod.CREDIT)
    return methods


def _parse_method(value: str | None) -> PaymentMethod | None:
    if not value:
        return None
    try:
        return PaymentMethod(value)
    except ValueError:
        return None


def resolve_payment(
    settings: PaymentSettings, *, current: str | None, credit_days: int | None = None
) -> PaymentResolution:
    """Decide the payment method for a checkout without asking when possible.

    Pure function of (settings, current selection), so calling it twice with
    no new input gives the same answer.
    """
    methods = enabled_methods(settings)
    if not methods:
        return PaymentResolution(status="unavailable")

    if len(methods) == 1:
        method = methods[0]
        return PaymentResolution(
            status="selected",
            method=method,
            credit_days=(credit_days or settings.credit_days) if method is PaymentMethod.CREDIT else None,
            options=tuple(methods),
        )

    previous = _parse_method(current)
    if previous in methods:
        return PaymentResolution(
            status="selected",
            method=previous,
            credit_days=(credit_days or settings.credit_days) if previous is PaymentMethod.CREDIT else None,
            options=tuple(methods),
        )

    return PaymentResolution(status="prompt", options=tuple(methods))


def payment_label(method: str | PaymentMethod | None, credit_days: int | None = None) -> str:
    parsed = method if isinstance(method, PaymentMethod) else _parse_method(method)
    if parsed is PaymentMethod.COD:
        return "Cash on Delivery"
    if parsed is PaymentMethod.ONLINE:
        return "Online Payment"
    if parsed is PaymentMethod.CREDIT:
        return f"Credit ({credit_days or 0} days)"
    return "Not selected"


def payment_buttons(methods: tuple[PaymentMethod, ...] | list[PaymentMethod]) -> list[tuple[str, str]]:
    action_by_method = {method: action for action, method in PAYMENT_ACTIONS.items()}
    return [(action_by_method[method], _BUTTON_TITLES[method]) for method in methods]
