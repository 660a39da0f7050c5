import pytest

from chatcommerce.core.errors import FlowExecutionError
from chatcommerce.fsm.context import Conversation
from chatcommerce.models.chat_session import ChatSession
from chatcommerce.models.flow import Flow
from chatcommerce.models.tenant import Tenant
from chatcommerce.services.flows import FlowInterpreter, match_flow
from chatcommerce.services.session_store import load_session
from chatcommerce.services.webhook_processor import process_webhook_payload
from tests.engine_support import build_outbound, build_session_factory, reply_payload, seed_tenant, text_payload
from tests.fixtures_data import CUSTOMER_PHONE, PRODUCTS, WELCOME_FLOW


@pytest.fixture
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr("chatcommerce.services.flows.time.sleep", calls.append)
    return calls


def _setup(flows, bot=None, fail_when=None):
    factory = build_session_factory()
    seed_tenant(factory, bot=bot or {"enabled": True}, products=PRODUCTS, flows=flows)
    outbound, provider = build_outbound(fail_when=fail_when)
    return factory, outbound, provider


def _say(factory, outbound, text):
    return process_webhook_payload(text_payload(text), session_factory=factory, outbound=outbound)


def _session(factory):
    return factory().query(ChatSession).filter_by(tenant_id=1, customer_phone=CUSTOMER_PHONE).one()


def _flow(name, keywords, nodes, flow_id=None):
    return Flow(id=flow_id, name=name, trigger_keywords=keywords, nodes=nodes, is_active=True)


def test_keyword_flow_plays_nodes_in_order(sleeps):
    factory, outbound, provider = _setup([WELCOME_FLOW])

    _say(factory, outbound, "Any deals today?")

    assert [message["kind"] for message in provider.sent] == ["text", "button"]
    assert provider.sent[0]["body"] == "Hello Asha! Today's deals at Sharma Stores:"
    buttons = provider.last["interactive"]["action"]["buttons"]
    assert [(b["reply"]["id"], b["reply"]["title"]) for b in buttons] == [
        ("browse_products", "Browse the full prod"),
        ("view_orders", "My Orders"),
    ]
    assert len(sleeps) == 1
    assert _session(factory).current_flow == "Welcome Flow"


def test_flow_buttons_dispatch_like_any_reply(sleeps):
    factory, outbound, provider = _setup([WELCOME_FLOW])
    _say(factory, outbound, "offer")

    process_webhook_payload(reply_payload("browse_products"), session_factory=factory, outbound=outbound)

    assert provider.last["kind"] == "list"
    assert _session(factory).state == "browsing"


def test_failing_node_does_not_stop_later_nodes(sleeps):
    flow = {
        "name": "Partial",
        "trigger_keywords": ["deals"],
        "nodes": [
            {"id": "1", "type": "buttons", "text": "Pick one", "buttons": []},
            {"id": "2", "type": "carousel", "text": "??"},
            {"id": "3", "type": "message", "text": "Still here for {business_name}"},
        ],
    }
    factory, outbound, provider = _setup([flow])

    _say(factory, outbound, "deals")

    assert [message["body"] for message in provider.sent] == ["Still here for Sharma Stores"]
    assert len(sleeps) == 2
    assert _session(factory).current_flow == "Partial"


def test_flow_with_no_deliverable_node_falls_back_to_welcome(sleeps):
    flow = {"name": "Broken", "trigger_keywords": ["deals"], "nodes": [{"type": "video"}]}
    factory, outbound, provider = _setup([flow])

    _say(factory, outbound, "deals")

    assert provider.last["kind"] == "list"
    assert "Welcome to Sharma Stores" in provider.last["body"]
    assert _session(factory).current_flow is None


def test_flow_without_nodes_falls_back_to_welcome(sleeps):
    factory, outbound, provider = _setup([{"name": "Empty", "trigger_keywords": ["deals"], "nodes": []}])

    _say(factory, outbound, "deals")

    assert len(provider.sent) == 1
    assert provider.last["kind"] == "list"
    assert sleeps == []


def test_send_failures_count_as_failed_nodes(sleeps):
    factory, outbound, provider = _setup(
        [WELCOME_FLOW], fail_when=lambda kind, body: body.startswith("Hello")
    )

    _say(factory, outbound, "deals")

    assert [message["kind"] for message in provider.sent] == ["button"]
    assert _session(factory).current_flow == "Welcome Flow"


def test_list_node_renders_catalog_with_custom_title(sleeps):
    flow = {"name": "Menu", "trigger_keywords": ["price list"], "nodes": [{"type": "list", "title": "Prices for {customer_name}"}]}
    factory, outbound, provider = _setup([flow])

    _say(factory, outbound, "send me the price list")

    assert provider.last["kind"] == "list"
    assert provider.last["body"] == "Prices for Asha"


def test_short_keyword_matches_inside_longer_words(sleeps):
    flow = {"name": "Hi Flow", "trigger_keywords": ["hi"], "nodes": [{"type": "message", "text": "flow reply"}]}
    factory, outbound, provider = _setup([flow])

    _say(factory, outbound, "is this fresh?")

    assert provider.last["body"] == "flow reply"


def test_flows_answer_even_when_bot_is_disabled(sleeps):
    factory, outbound, provider = _setup([WELCOME_FLOW], bot={"enabled": False})

    _say(factory, outbound, "deals")
    assert provider.sent[0]["body"].startswith("Hello Asha")

    _say(factory, outbound, "what time do you close")
    assert provider.button_ids() == ["browse_products", "view_cart", "contact_support"]


def test_inactive_flows_are_ignored(sleeps):
    flow = dict(WELCOME_FLOW, is_active=False)
    factory, outbound, provider = _setup([flow], bot={"enabled": False})

    _say(factory, outbound, "deals")

    assert provider.sent == []


def test_match_flow_prefers_lowest_id_and_exact_or_contained_keywords():
    first = _flow("First", ["deal"], [], flow_id=1)
    second = _flow("Second", ["deals"], [], flow_id=2)

    assert match_flow([first, second], "DEALS") is first
    assert match_flow([second], "  deals  ") is second
    assert match_flow([first, second], "nothing here") is None
    assert match_flow([first], "") is None
    assert match_flow([_flow("Blank", ["", "  "], [])], "anything") is None


def test_interpreter_sleeps_only_between_nodes():
    factory = build_session_factory()
    seed_tenant(factory, bot={"enabled": True})
    outbound, provider = build_outbound()
    db = factory()
    session, _ = load_session(db, tenant_id=1, customer_phone=CUSTOMER_PHONE)
    conv = Conversation(db=db, tenant=db.get(Tenant, 1), session=session, outbound=outbound, contact_name="Asha")
    calls = []
    flow = _flow(
        "Three",
        ["x"],
        [{"type": "message", "text": "one"}, {"type": "message", "text": "two"}, {"type": "message", "text": "three"}],
    )

    result = FlowInterpreter(conv, delay_seconds=0.25, sleep=calls.append).run(flow)

    assert calls == [0.25, 0.25]
    assert (result.succeeded, result.failed) == (3, 0)
    assert [message["body"] for message in provider.sent] == ["one", "two", "three"]


def test_interpreter_raises_when_every_node_fails():
    factory = build_session_factory()
    seed_tenant(factory, bot={"enabled": True})
    outbound, _ = build_outbound(fail_when=lambda kind, body: True)
    db = factory()
    session, _ = load_session(db, tenant_id=1, customer_phone=CUSTOMER_PHONE)
    conv = Conversation(db=db, tenant=db.get(Tenant, 1), session=session, outbound=outbound)
    flow = _flow("Doomed", ["x"], [{"type": "message", "text": "one"}])

    with pytest.raises(FlowExecutionError) as excinfo:
        FlowInterpreter(conv, delay_seconds=0).run(flow)

    assert excinfo.value.flow_name == "Doomed"
