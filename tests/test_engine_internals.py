import json
import logging

import pytest
from sqlalchemy.orm.exc import StaleDataError

from chatcommerce.core import startup_checks
from chatcommerce.core.logging_setup import JsonFormatter
from chatcommerce.core.metrics import EngineCounters
from chatcommerce.core.request_context import clear_request_context, set_request_context
from chatcommerce.fsm import engine
from chatcommerce.models.processed_message import ProcessedMessage
from chatcommerce.services.templates import render_template
from chatcommerce.services.webhook_processor import process_webhook_payload
from tests.engine_support import build_outbound, build_session_factory, seed_tenant, text_payload


def _setup():
    factory = build_session_factory()
    seed_tenant(factory, bot={"enabled": True})
    outbound, provider = build_outbound()
    return factory, outbound, provider


def test_turn_reruns_once_after_concurrent_session_change(monkeypatch):
    factory, outbound, provider = _setup()
    real_route_text = engine.route_text
    calls = []

    def flaky(conv, text):
        calls.append(text)
        if len(calls) == 1:
            raise StaleDataError("chat_sessions row changed underneath us")
        return real_route_text(conv, text)

    monkeypatch.setattr(engine, "route_text", flaky)

    summary = process_webhook_payload(text_payload("hi"), session_factory=factory, outbound=outbound)

    assert calls == ["hi", "hi"]
    assert (summary["messages"], summary["errors"]) == (1, 0)
    assert len(provider.sent) == 1


def test_persistent_conflict_is_reported_as_event_error(monkeypatch):
    factory, outbound, provider = _setup()

    def always_stale(conv, text):
        raise StaleDataError("still changing")

    monkeypatch.setattr(engine, "route_text", always_stale)

    summary = process_webhook_payload(text_payload("hi"), session_factory=factory, outbound=outbound)

    assert summary["errors"] == 1
    assert provider.sent == []
    # The message stays claimed so a redelivery is not replayed.
    assert factory().query(ProcessedMessage).count() == 1


def test_conflict_after_a_reply_was_sent_is_not_rerun(monkeypatch):
    factory, outbound, provider = _setup()
    calls = []

    def reply_then_conflict(conv, text):
        calls.append(text)
        conv.send_text("Looking that up for you")
        raise StaleDataError("chat_sessions row changed underneath us")

    monkeypatch.setattr(engine, "route_text", reply_then_conflict)

    summary = process_webhook_payload(text_payload("hi"), session_factory=factory, outbound=outbound)

    assert calls == ["hi"]
    assert summary["errors"] == 1
    assert [message["body"] for message in provider.sent] == ["Looking that up for you"]


def test_one_failing_event_does_not_stop_the_rest(monkeypatch):
    factory, outbound, provider = _setup()
    payload = text_payload("boom")
    second = text_payload("hi")["entry"][0]["changes"][0]["value"]["messages"][0]
    payload["entry"][0]["changes"][0]["value"]["messages"].append(second)
    real_route_text = engine.route_text

    def explode_on_boom(conv, text):
        if text == "boom":
            raise RuntimeError("handler bug")
        return real_route_text(conv, text)

    monkeypatch.setattr(engine, "route_text", explode_on_boom)

    summary = process_webhook_payload(payload, session_factory=factory, outbound=outbound)

    assert (summary["events"], summary["messages"], summary["errors"]) == (2, 1, 1)
    assert provider.last["kind"] == "list"


def test_claim_message_is_first_come_first_served():
    factory, _, _ = _setup()
    db = factory()

    assert engine.claim_message(db, tenant_id=1, message_id="wamid.A") is True
    assert engine.claim_message(db, tenant_id=1, message_id="wamid.A") is False
    assert engine.claim_message(factory(), tenant_id=1, message_id="wamid.B") is True


def test_engine_counters_track_totals_and_tenants():
    counters = EngineCounters()
    counters.increment("inbound_processed", 1)
    counters.increment("inbound_processed", 2)
    counters.increment("tenant_not_found")

    assert counters.get("inbound_processed") == 2
    assert counters.snapshot() == {
        "totals": {"inbound_processed": 2, "tenant_not_found": 1},
        "tenants": {"1": {"inbound_processed": 1}, "2": {"inbound_processed": 1}},
    }
    counters.reset()
    assert counters.snapshot() == {"totals": {}, "tenants": {}}


def test_render_template_keeps_unknown_placeholders():
    assert render_template("Hi {customer_name}, {unknown}!", customer_name="Asha") == "Hi Asha, {unknown}!"
    assert render_template("Total {total}", total=0) == "Total 0"
    assert render_template(None) == ""


def test_json_formatter_includes_context_and_masks_tokens():
    formatter = JsonFormatter("%(message)s")
    record = logging.LogRecord(
        "chatcommerce.test", logging.INFO, __file__, 1, "calling graph with access_token=EAAGsecret", None, None
    )
    record.event = "outbound_call"
    set_request_context(request_id="req-1", tenant_id="7", customer="919876543210")
    try:
        line = json.loads(formatter.format(record))
    finally:
        clear_request_context()

    assert line["message"] == "calling graph with access_token=***"
    assert (line["request_id"], line["tenant_id"], line["customer"]) == ("req-1", "7", "919876543210")
    assert line["event"] == "outbound_call"
    assert line["level"] == "INFO"


def test_sqlite_is_refused_in_production(monkeypatch):
    monkeypatch.setattr(startup_checks, "IS_PROD", True)
    monkeypatch.setattr(startup_checks, "DATABASE_URL", "sqlite:///./chatcommerce.db")

    with pytest.raises(RuntimeError):
        startup_checks.validate_database_environment()


def test_apply_migrations_runs_upgrade_only_when_enabled(monkeypatch, tmp_path):
    upgrades = []
    monkeypatch.setattr(startup_checks.command, "upgrade", lambda config, revision: upgrades.append(revision))
    ini = tmp_path / "alembic.ini"
    ini.write_text("[alembic]\nscript_location = alembic\n")

    startup_checks.apply_migrations(alembic_config_path=ini, enabled=False)
    assert upgrades == []

    startup_checks.apply_migrations(alembic_config_path=ini, enabled=True)
    assert upgrades == ["head"]

    with pytest.raises(RuntimeError):
        startup_checks.apply_migrations(alembic_config_path=tmp_path / "missing.ini", enabled=True)
