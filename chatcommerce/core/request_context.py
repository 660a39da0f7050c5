from __future__ import annotations

from contextvars import ContextVar


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_TENANT_ID_CTX: ContextVar[str | None] = ContextVar("tenant_id", default=None)
_CUSTOMER_CTX: ContextVar[str | None] = ContextVar("customer", default=None)


def set_request_context(
    *, request_id: str | None = None, tenant_id: str | None = None, customer: str | None = None
) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if tenant_id is not None:
        _TENANT_ID_CTX.set(tenant_id)
    if customer is not None:
        _CUSTOMER_CTX.set(customer)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_tenant_id() -> str | None:
    return _TENANT_ID_CTX.get()


def get_customer() -> str | None:
    return _CUSTOMER_CTX.get()


def clear_turn_context() -> None:
    """Drop tenant/customer between webhook events; keeps the request id."""
    _TENANT_ID_CTX.set(None)
    _CUSTOMER_CTX.set(None)


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    clear_turn_context()
