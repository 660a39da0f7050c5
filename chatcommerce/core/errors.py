from __future__ import annotations


class ChatCommerceError(Exception):
    """Base class for errors raised by the conversational commerce engine."""


class FlowExecutionError(ChatCommerceError):
    def __init__(self, flow_name: str, reason: str):
        super().__init__(f"Flow '{flow_name}' produced no effect: {reason}")
        self.flow_name = flow_name
        self.reason = reason


class EmptyCartError(ChatCommerceError):
    pass


class OrderNotFoundError(ChatCommerceError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class InvalidStatusTransitionError(ChatCommerceError):
    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Invalid order status transition: {from_status} -> {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class WhatsAppSendError(ChatCommerceError):
    def __init__(self, status_code: int, body_text: str):
        super().__init__(f"WhatsApp error {status_code}: {body_text}")
        self.status_code = status_code
        self.body_text = body_text
