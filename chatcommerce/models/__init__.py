from chatcommerce.models.tenant import Tenant
from chatcommerce.models.whatsapp_config import WhatsAppConfig
from chatcommerce.models.chat_session import ChatSession
from chatcommerce.models.customer import Customer
from chatcommerce.models.product import Product
from chatcommerce.models.order import Order
from chatcommerce.models.flow import Flow
from chatcommerce.models.order_bot_config import OrderBotConfig
from chatcommerce.models.whatsapp_message_log import WhatsAppMessageLog
from chatcommerce.models.processed_message import ProcessedMessage
from chatcommerce.models.support_ticket import SupportTicket
