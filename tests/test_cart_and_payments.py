from chatcommerce.models.chat_session import ChatSession
from chatcommerce.models.order_bot_config import OrderBotConfig
from chatcommerce.services.bot_config import PaymentSettings, settings_from_row
from chatcommerce.services.cart import add_to_cart, cart_total, format_money, item_count, load_cart
from chatcommerce.services.payments import (
    PaymentMethod,
    enabled_methods,
    payment_buttons,
    payment_label,
    resolve_payment,
)


def _session():
    return ChatSession(tenant_id=1, customer_phone="91", cart=[], cart_total=0)


def test_adding_same_product_merges_line_and_total_follows_lines():
    session = _session()

    add_to_cart(session, product_id="P1", name="Rice", unit_price=100)
    add_to_cart(session, product_id="P1", name="Rice", unit_price=100)
    lines = add_to_cart(session, product_id="P2", name="Chai", unit_price=50)

    assert [(line.product_id, line.quantity, line.line_total) for line in lines] == [("P1", 2, 200.0), ("P2", 1, 50.0)]
    assert session.cart_total == 250.0
    assert session.cart[0] == {"product_id": "P1", "name": "Rice", "unit_price": 100.0, "quantity": 2, "line_total": 200.0}
    assert item_count(lines) == 3


def test_cart_total_is_sum_of_lines_after_every_mutation():
    session = _session()
    prices = [("A", 19.99), ("B", 0.1), ("A", 19.99), ("C", 0.2), ("B", 0.1)]

    for product_id, price in prices:
        add_to_cart(session, product_id=product_id, name=product_id, unit_price=price)
        lines = load_cart(session)
        expected = round(sum(line.quantity * line.unit_price for line in lines), 2)
        assert session.cart_total == expected == cart_total(lines)

    assert session.cart_total == 40.38


def test_load_cart_drops_broken_lines():
    session = _session()
    session.cart = [{"product_id": "P1", "name": "Rice", "unit_price": "100", "quantity": 1}, {"name": "no id"}, "junk"]

    assert [line.product_id for line in load_cart(session)] == ["P1"]


def test_format_money_uses_rupees():
    assert format_money(1250) == "₹1,250.00"


def test_single_enabled_method_is_auto_selected_and_stable():
    settings = PaymentSettings(acceptCOD=True, acceptOnline=False, acceptCredit=False)

    first = resolve_payment(settings, current=None)
    second = resolve_payment(settings, current=first.method.value)

    assert first.status == second.status == "selected"
    assert first.method is second.method is PaymentMethod.COD
    assert first.credit_days is None


def test_single_credit_method_gets_default_credit_days():
    settings = PaymentSettings(acceptCOD=False, acceptCredit=True, creditDays=15)

    resolution = resolve_payment(settings, current=None)

    assert resolution.method is PaymentMethod.CREDIT
    assert resolution.credit_days == 15
    assert payment_label(resolution.method, resolution.credit_days) == "Credit (15 days)"


def test_multiple_methods_prompt_until_a_valid_choice_is_stored():
    settings = PaymentSettings(acceptCOD=True, acceptOnline=True)

    assert resolve_payment(settings, current=None).status == "prompt"
    assert resolve_payment(settings, current=None).options == (PaymentMethod.COD, PaymentMethod.ONLINE)
    # A stale choice for a method that was switched off prompts again.
    assert resolve_payment(settings, current="CREDIT").status == "prompt"
    reused = resolve_payment(settings, current="ONLINE")
    assert (reused.status, reused.method) == ("selected", PaymentMethod.ONLINE)


def test_no_enabled_method_is_unavailable():
    settings = PaymentSettings(acceptCOD=False, acceptOnline=False, acceptCredit=False)

    assert resolve_payment(settings, current="COD").status == "unavailable"


def test_payment_buttons_map_methods_to_action_ids():
    assert [button_id for button_id, _ in payment_buttons([PaymentMethod.COD, PaymentMethod.CREDIT])] == [
        "pay_cod",
        "pay_credit",
    ]
    assert payment_label("ONLINE") == "Online Payment"
    assert payment_label(None) == "Not selected"


def test_bot_settings_merge_stored_documents_over_defaults():
    row = OrderBotConfig(
        tenant_id=1,
        enabled=True,
        welcome_message=None,
        menu_options={"support": {"enabled": False}},
        payment_settings={"acceptOnline": True},
        order_settings={"minOrderValue": 200},
        messages={"cartEmpty": "Nothing here yet"},
    )

    settings = settings_from_row(row)

    assert settings.enabled is True
    assert settings.menu_options.support.enabled is False
    assert settings.menu_options.support.label == "💬 Contact Support"
    assert settings.payment_settings.accept_cod is True
    assert settings.payment_settings.accept_online is True
    assert settings.order_settings.min_order_value == 200
    assert settings.order_settings.max_items_per_order == 50
    assert settings.messages.cart_empty == "Nothing here yet"
    assert "{order_id}" in settings.messages.order_confirmed


def test_bot_settings_accept_snake_case_documents():
    row = OrderBotConfig(
        tenant_id=1,
        enabled=True,
        welcome_message=None,
        menu_options={"view_orders": {"enabled": False}},
        payment_settings={"accept_cod": False, "accept_online": True},
        order_settings={"min_order_value": 150, "max_items_per_order": 5},
        messages={"cart_empty": "Cart is empty"},
    )

    settings = settings_from_row(row)

    assert enabled_methods(settings.payment_settings) == [PaymentMethod.ONLINE]
    assert settings.menu_options.view_orders.enabled is False
    assert settings.menu_options.view_orders.label == "📦 My Orders"
    assert settings.order_settings.min_order_value == 150
    assert settings.order_settings.max_items_per_order == 5
    assert settings.messages.cart_empty == "Cart is empty"
