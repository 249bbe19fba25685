from .users import User
from .catalog import Item
from .orders import Order, ORDER_STATUSES, STATUS_CART, STATUS_PLACED, STATUS_PAID, STATUS_SHIPPED
from .api_keys import ApiKey
from .security import SecurityEvent

__all__ = [
    'User', 'Item', 'Order', 'ApiKey', 'SecurityEvent',
    'ORDER_STATUSES', 'STATUS_CART', 'STATUS_PLACED', 'STATUS_PAID', 'STATUS_SHIPPED',
]
