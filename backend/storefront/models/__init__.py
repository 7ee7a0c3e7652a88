from storefront.models.user import Role, User
from storefront.models.refresh_token import RefreshToken
from storefront.models.product import Product
from storefront.models.review import Review

__all__ = [
    "Role",
    "User",
    "RefreshToken",
    "Product",
    "Review",
]
