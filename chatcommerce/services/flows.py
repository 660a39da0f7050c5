"""Tenant-authored keyword flows and the interpreter that plays them."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Annotated, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from chatcommerce.core.config import FLOW_SEND_DELAY_SECONDS
from chatcommerce.core.errors import FlowExecutionError
from chatcommerce.fsm.context import Conversation
from chatcommerce.models.flow import Flow
from chatcommerce.services.catalog import render_catalog
from chatcommerce.services.templates import render_template
from chatcommerce.whatsapp.interactive import MAX_BUTTONS

logger = logging.getLogger(__name__)


class _Node(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None


class MessageNode(_Node):
    type: Literal["message"]
    text: str = Field(..., min_length=1)


class FlowButton(BaseModel):
    model_config = ConfigDict(extra="ignore")

    label: str = Field(..., min_length=1)
    action: str = Field(..., min_length=1)


class ButtonsNode(_Node):
    type: Literal["buttons"]
    text: str = Field(..., min_length=1)
    buttons: list[FlowButton] = Field(..., min_length=1)


class ListNode(_Node):
    type: Literal["list"]
    action: str = "view_products"
    title: str | None = None


FlowNode = Annotated[Union[MessageNode, ButtonsNode, ListNode], Field(discriminator="type")]
_NODE_ADAPTER = TypeAdapter(FlowNode)


@dataclass
class NodeOutcome:
    index: int
    node_type: str
    ok: bool
    error: str | None = None


@dataclass
class FlowRunResult:
    flow_name: str
    outcomes: list[NodeOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded


def _keywords(flow: Flow) -> list[str]:
    return [str(keyword).strip().lower() for keyword in (flow.trigger_keywords or []) if str(keyword).strip()]


def active_flows(conv: Conversation) -> list[Flow]:
    return (
        conv.db.query(Flow)
        .filter(Flow.tenant_id == conv.tenant_id, Flow.is_active.is_(True))
        .order_by(Flow.id.asc())
        .all()
    )


def match_flow(flows: list[Flow], text: str) -> Flow | None:
    """First flow with a keyword equal to, or contained in, the text.

    Containment means a short keyword like "hi" also fires on "this".
    """
    normalized = text.strip().lower()
    if not normalized:
        return None
    for flow in flows:
        for keyword in _keywords(flow):
            if normalized == keyword or keyword in normalized:
                return flow
    return None


class FlowInterpreter:
    def __init__(
        self,
        conv: Conversation,
        *,
        delay_seconds: float = FLOW_SEND_DELAY_SECONDS,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.conv = conv
        self.delay_seconds = delay_seconds
        self._sleep = sleep or time.sleep

    def _render(self, text: str) -> str:
        return render_template(
            text,
            business_name=self.conv.business_name,
            customer_name=self.conv.customer_name(),
            customer_phone=self.conv.customer_phone,
        )

    def _execute(self, node: MessageNode | ButtonsNode | ListNode) -> bool:
        if isinstance(node, MessageNode):
            return self.conv.send_text(self._render(node.text))
        if isinstance(node, ButtonsNode):
            buttons = [(button.action, button.label) for button in node.buttons[:MAX_BUTTONS]]
            return self.conv.send_buttons(self._render(node.text), buttons)
        if node.action == "view_products":
            return render_catalog(self.conv, title=self._render(node.title) if node.title else None)
        raise ValueError(f"unsupported list action {node.action!r}")

    def run(self, flow: Flow) -> FlowRunResult:
        """Play every node in order; a failing node is recorded and the next one still runs.

        Raises FlowExecutionError when nothing at all could be delivered.
        """
        raw_nodes = list(flow.nodes or [])
        result = FlowRunResult(flow_name=flow.name)
        if not raw_nodes:
            raise FlowExecutionError(flow.name, "flow has no nodes")

        for index, raw in enumerate(raw_nodes):
            node_type = raw.get("type", "?") if isinstance(raw, dict) else "?"
            try:
                node = _NODE_ADAPTER.validate_python(raw)
                ok = self._execute(node)
                outcome = NodeOutcome(index=index, node_type=node_type, ok=ok, error=None if ok else "send failed")
            except ValidationError as exc:
                outcome = NodeOutcome(index=index, node_type=node_type, ok=False, error=f"invalid node: {exc.error_count()} errors")
            except Exception as exc:
                logger.exception("Flow node raised", extra={"event": "flow_node_error", "flow": flow.name})
                outcome = NodeOutcome(index=index, node_type=node_type, ok=False, error=str(exc))

            if not outcome.ok:
                logger.warning(
                    "Flow node %s (%s) failed: %s",
                    index,
                    node_type,
                    outcome.error,
                    extra={"event": "flow_node_failed", "flow": flow.name},
                )
            result.outcomes.append(outcome)
            if index < len(raw_nodes) - 1 and self.delay_seconds > 0:
                self._sleep(self.delay_seconds)

        if result.succeeded == 0:
            raise FlowExecutionError(flow.name, f"all {len(raw_nodes)} nodes failed")

        self.conv.session.current_flow = flow.name
        self.conv.save()
        logger.info(
            "Flow executed: %s ok, %s failed",
            result.succeeded,
            result.failed,
            extra={"event": "flow_executed", "flow": flow.name},
        )
        return result
