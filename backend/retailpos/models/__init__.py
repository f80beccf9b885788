from .tenancy import Organization, Store
from .auth import User, UserStoreAssignment, SessionToken
from .inventory import Unit, Product
from .storefront import OnlineStore, ShoppingCart, CartItem, OnlineOrder, OnlineOrderItem

__all__ = [
    'Organization', 'Store',
    'User', 'UserStoreAssignment', 'SessionToken',
    'Unit', 'Product',
    'OnlineStore', 'ShoppingCart', 'CartItem', 'OnlineOrder', 'OnlineOrderItem',
]
