"""Reusable data for engine and webhook test scenarios."""

PHONE_NUMBER_ID = "109876543210"
ACCOUNT_ID = "WABA-555"
CUSTOMER_PHONE = "919876543210"

BOT_CONFIG_SINGLE_MENU = {
    "enabled": True,
    "welcome_message": "Hi {customer_name}, welcome to {business_name}!",
    "menu_options": {
        "browseProducts": {"enabled": True, "label": "🛍️ Shop Now"},
        "viewOrders": {"enabled": False, "label": "📦 My Orders"},
        "trackOrder": {"enabled": False, "label": "🚚 Track"},
        "support": {"enabled": False, "label": "💬 Support"},
    },
}

PAYMENT_COD_ONLY = {"acceptCOD": True, "acceptOnline": False, "acceptCredit": False}
PAYMENT_COD_AND_ONLINE = {"acceptCOD": True, "acceptOnline": True, "acceptCredit": False}
PAYMENT_NONE = {"acceptCOD": False, "acceptOnline": False, "acceptCredit": False}

PRODUCTS = [
    {"id": "P1aaaaaaaaaaaa", "name": "Basmati Rice 1kg", "price": 100, "category": "Grocery", "stock": 20},
    {"id": "P2bbbbbbbbbbbb", "name": "Masala Chai", "price": 50, "category": "Beverages", "stock": 5},
    {"id": "P3cccccccccccc", "name": "Ghee 500ml", "price": 320, "category": "Grocery", "stock": 0},
]

WELCOME_FLOW = {
    "name": "Welcome Flow",
    "trigger_keywords": ["deals", "offer"],
    "nodes": [
        {"id": "1", "type": "message", "text": "Hello {customer_name}! Today's deals at {business_name}:"},
        {
            "id": "2",
            "type": "buttons",
            "text": "What would you like to do?",
            "buttons": [
                {"label": "Browse the full product catalog", "action": "browse_products"},
                {"label": "My Orders", "action": "view_orders"},
            ],
        },
    ],
}
