from .auth import User, SessionToken, LoginEvent
from .catalog import Category, Product
from .orders import Order, OrderItem, OrderSequence
from .rewards import RewardTask, RewardClaim
from .points import PointsAdjustment
from .visitors import Visitor, VisitorVisit

__all__ = [
    'User', 'SessionToken', 'LoginEvent',
    'Category', 'Product',
    'Order', 'OrderItem', 'OrderSequence',
    'RewardTask', 'RewardClaim',
    'PointsAdjustment',
    'Visitor', 'VisitorVisit',
]
