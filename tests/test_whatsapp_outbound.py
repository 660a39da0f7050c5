import json

import httpx
import pytest

from chatcommerce.core.config import META_API_VERSION
from chatcommerce.models.whatsapp_config import WhatsAppConfig
from chatcommerce.models.whatsapp_message_log import WhatsAppMessageLog
from chatcommerce.whatsapp.backoff import TenantBackoff
from chatcommerce.whatsapp.base import sanitize_payload
from chatcommerce.whatsapp.cloud_provider import CloudWhatsAppProvider
from chatcommerce.whatsapp.service import WhatsAppService
from tests.engine_support import build_session_factory, payload_json, seed_tenant
from tests.fixtures_data import CUSTOMER_PHONE, PHONE_NUMBER_ID


class FakeGraph:
    """Scripted responses for the Graph API; each item is a status code or an exception."""

    def __init__(self, *script):
        self.script = list(script)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        step = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(step, Exception):
            raise step
        if step == 200:
            return httpx.Response(200, json={"messages": [{"id": f"wamid.OUT{len(self.requests)}"}]})
        return httpx.Response(step, json={"error": {"message": "nope"}})

    def client(self):
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def cloud_db():
    factory = build_session_factory()
    seed_tenant(factory)
    db = factory()
    config = db.query(WhatsAppConfig).filter_by(tenant_id=1).one()
    config.provider = "cloud"
    config.is_enabled = True
    config.access_token = "EAAG-tenant-token"
    db.commit()
    return db


def _service(graph, *, fallback_to_mock=False, backoff=None, sleeps=None):
    provider = CloudWhatsAppProvider(
        client_factory=graph.client,
        backoff=backoff or TenantBackoff(),
        max_retries=3,
        sleep=(sleeps.append if sleeps is not None else lambda seconds: None),
    )
    return WhatsAppService(cloud_provider=provider, fallback_to_mock=fallback_to_mock)


def test_cloud_send_posts_to_graph_and_logs_provider_id(cloud_db):
    graph = FakeGraph(200)

    log = _service(graph).send_text(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello")

    assert (log.status, log.provider_message_id) == ("sent", "wamid.OUT1")
    request = graph.requests[0]
    assert request.url.path == f"/{META_API_VERSION}/{PHONE_NUMBER_ID}/messages"
    assert request.headers["Authorization"] == "Bearer EAAG-tenant-token"
    body = json.loads(request.content)
    assert body["to"] == CUSTOMER_PHONE
    assert body["text"]["body"] == "hello"
    assert payload_json(log)["text"]["body"] == "hello"


def test_interactive_send_wraps_payload(cloud_db):
    graph = FakeGraph(200)

    _service(graph).send_buttons(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, body="Pick", buttons=[("a", "A")])

    body = json.loads(graph.requests[0].content)
    assert body["type"] == "interactive"
    assert body["interactive"]["action"]["buttons"][0]["reply"] == {"id": "a", "title": "A"}


def test_retryable_errors_are_retried(cloud_db):
    graph = FakeGraph(503, 429, 200)

    log = _service(graph).send_text(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello")

    assert log.status == "sent"
    assert len(graph.requests) == 3


def test_client_errors_fail_without_retry(cloud_db):
    graph = FakeGraph(400)

    log = _service(graph).send_text(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello")

    assert log.status == "failed"
    assert "WhatsApp error 400" in log.error
    assert len(graph.requests) == 1


def test_transport_errors_give_up_after_max_retries(cloud_db):
    graph = FakeGraph(httpx.ConnectError("connection refused"))

    log = _service(graph).send_text(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello")

    assert log.status == "failed"
    assert len(graph.requests) == 3
    assert cloud_db.query(WhatsAppMessageLog).filter_by(direction="out").count() == 1


def test_missing_credentials_fail_without_calling_out(cloud_db, monkeypatch):
    monkeypatch.setattr("chatcommerce.whatsapp.cloud_provider.META_WA_ACCESS_TOKEN", "")
    config = cloud_db.query(WhatsAppConfig).one()
    config.access_token = None
    cloud_db.commit()
    graph = FakeGraph(200)

    log = _service(graph).send_text(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello")

    assert log.status == "failed"
    assert "credentials" in log.error
    assert graph.requests == []


def test_failed_cloud_send_falls_back_to_mock_when_enabled(cloud_db):
    graph = FakeGraph(500)

    log = _service(graph, fallback_to_mock=True).send_text(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello")

    assert log.status == "sent"
    assert log.provider_message_id.startswith("mock-")
    statuses = [row.status for row in cloud_db.query(WhatsAppMessageLog).order_by(WhatsAppMessageLog.id)]
    assert statuses == ["failed", "sent"]


def test_disabled_config_uses_mock_provider(cloud_db):
    config = cloud_db.query(WhatsAppConfig).one()
    config.is_enabled = False
    cloud_db.commit()
    graph = FakeGraph(200)

    log = _service(graph).send_text(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello")

    assert log.provider_message_id.startswith("mock-")
    assert graph.requests == []


def test_provider_exceptions_become_failed_rows(cloud_db):
    class Exploding:
        def send_text(self, db, **kwargs):
            raise RuntimeError("provider bug")

    service = WhatsAppService(cloud_provider=Exploding(), fallback_to_mock=False)

    log = service.send_text(cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello")

    assert log.status == "failed"
    assert log.error == "provider bug"


def test_backoff_grows_after_threshold_and_resets():
    now = [1000.0]
    backoff = TenantBackoff(threshold=2, max_backoff_seconds=4, cooldown_seconds=60, clock=lambda: now[0])

    delays = []
    for _ in range(5):
        delays.append(backoff.before_request(tenant_id=1, integration="wa").delay_seconds)
        backoff.register_failure(tenant_id=1, integration="wa")
    assert delays == [0.0, 0.0, 1.0, 2.0, 4.0]
    assert backoff.before_request(tenant_id=2, integration="wa").delay_seconds == 0.0

    now[0] += 61
    assert backoff.before_request(tenant_id=1, integration="wa").consecutive_failures == 0

    backoff.register_failure(tenant_id=1, integration="wa")
    backoff.register_failure(tenant_id=1, integration="wa")
    backoff.register_success(tenant_id=1, integration="wa")
    assert backoff.before_request(tenant_id=1, integration="wa").delay_seconds == 0.0


def test_cloud_provider_waits_out_backoff_between_attempts(cloud_db):
    sleeps = []
    graph = FakeGraph(503, 503, 200)

    log = _service(graph, backoff=TenantBackoff(threshold=1), sleeps=sleeps).send_text(
        cloud_db, tenant_id=1, to_phone=CUSTOMER_PHONE, text="hello"
    )

    assert log.status == "sent"
    assert sleeps == [1.0, 2.0]


def test_sanitize_payload_masks_secrets():
    clean = sanitize_payload({"access_token": "EAAG123456", "nested": [{"Token": "abc"}], "text": "hi"})

    assert clean == {"access_token": "****3456", "nested": [{"Token": "****"}], "text": "hi"}
