from .users import User, SessionToken
from .catalog import MenuItem
from .subscriptions import Subscription, MealSelection, SubscriptionBillingCycle
from .orders import Order, OrderItem
from .payments import Payment

__all__ = [
    'User', 'SessionToken',
    'MenuItem',
    'Subscription', 'MealSelection', 'SubscriptionBillingCycle',
    'Order', 'OrderItem',
    'Payment',
]
