from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from chatcommerce.core.database import get_db
from chatcommerce.core.errors import InvalidStatusTransitionError, OrderNotFoundError
from chatcommerce.deps import require_admin_token
from chatcommerce.models.order import Order
from chatcommerce.services.orders import HISTORY_LIMIT, find_orders, update_order_status

router = APIRouter(prefix="/api/tenants/{tenant_id}/orders", tags=["orders"])


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


def _serialize_order(order: Order) -> dict:
    return {
        "order_id": order.order_id,
        "customer_phone": order.customer_phone,
        "customer_name": order.customer_name,
        "delivery_address": order.delivery_address,
        "items": order.items_json or [],
        "item_count": order.item_count,
        "total": float(order.total or 0),
        "status": order.status,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "credit_days": order.credit_days,
        "source": order.source,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


@router.get("")
def list_customer_orders(
    tenant_id: int,
    phone: str = Query(..., min_length=3),
    limit: int = Query(HISTORY_LIMIT, ge=1, le=50),
    db: Session = Depends(get_db),
    _admin: None = Depends(require_admin_token),
):
    orders = find_orders(db, tenant_id=tenant_id, phone=phone, limit=limit)
    return {"orders": [_serialize_order(order) for order in orders]}


@router.patch("/{order_id}/status")
def change_order_status(
    tenant_id: int,
    order_id: str,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    _admin: None = Depends(require_admin_token),
):
    try:
        order = update_order_status(db, tenant_id=tenant_id, order_id=order_id, new_status=payload.status)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return _serialize_order(order)
