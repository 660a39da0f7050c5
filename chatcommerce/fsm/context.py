from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy.orm import Session

from chatcommerce.fsm.states import SessionState, coerce_state
from chatcommerce.models.chat_session import ChatSession
from chatcommerce.models.customer import Customer
from chatcommerce.models.tenant import Tenant
from chatcommerce.services.bot_config import BotSettings, load_bot_settings
from chatcommerce.services.session_store import save_session
from chatcommerce.whatsapp.interactive import ListSection
from chatcommerce.whatsapp.service import WhatsAppService


@dataclass
class Conversation:
    """Everything one turn needs: db, tenant, session and the outbound gateway.

    Tenant configuration is read through here once per turn and never cached
    beyond it.
    """

    db: Session
    tenant: Tenant
    session: ChatSession
    outbound: WhatsAppService
    contact_name: str | None = None
    _settings: BotSettings | None = field(default=None, init=False, repr=False)
    _settings_loaded: bool = field(default=False, init=False, repr=False)
    # Outbound messages handed to the gateway during this turn.
    sent: int = field(default=0, init=False)

    @property
    def tenant_id(self) -> int:
        return self.tenant.id

    @property
    def customer_phone(self) -> str:
        return self.session.customer_phone

    @property
    def business_name(self) -> str:
        return self.tenant.business_name or "our store"

    @property
    def state(self) -> SessionState:
        return coerce_state(self.session.state)

    def set_state(self, state: SessionState) -> None:
        self.session.state = state.value

    @property
    def bot_settings(self) -> BotSettings | None:
        if not self._settings_loaded:
            self._settings = load_bot_settings(self.db, self.tenant_id)
            self._settings_loaded = True
        return self._settings

    @property
    def bot_enabled(self) -> bool:
        settings = self.bot_settings
        return bool(settings and settings.enabled)

    @property
    def settings(self) -> BotSettings:
        """Stored settings, or the defaults when the tenant has none."""
        return self.bot_settings or BotSettings()

    def customer_record(self) -> Customer | None:
        return (
            self.db.query(Customer)
            .filter(Customer.tenant_id == self.tenant_id, Customer.phone == self.customer_phone)
            .first()
        )

    def customer_name(self) -> str:
        record = self.customer_record()
        if record is not None and record.name:
            return record.name
        return self.contact_name or "there"

    def send_text(self, text: str) -> bool:
        self.sent += 1
        log_entry = self.outbound.send_text(
            self.db, tenant_id=self.tenant_id, to_phone=self.customer_phone, text=text
        )
        return log_entry.status != "failed"

    def send_buttons(
        self,
        body: str,
        buttons: Sequence[tuple[str, str]],
        *,
        header: str | None = None,
        footer: str | None = None,
    ) -> bool:
        self.sent += 1
        log_entry = self.outbound.send_buttons(
            self.db,
            tenant_id=self.tenant_id,
            to_phone=self.customer_phone,
            body=body,
            buttons=buttons,
            header=header,
            footer=footer,
        )
        return log_entry.status != "failed"

    def send_list(
        self,
        body: str,
        button_label: str,
        sections: Sequence[ListSection],
        *,
        header: str | None = None,
        footer: str | None = None,
    ) -> bool:
        self.sent += 1
        log_entry = self.outbound.send_list(
            self.db,
            tenant_id=self.tenant_id,
            to_phone=self.customer_phone,
            body=body,
            button_label=button_label,
            sections=sections,
            header=header,
            footer=footer,
        )
        return log_entry.status != "failed"

    def save(self) -> None:
        save_session(self.db, self.session)
