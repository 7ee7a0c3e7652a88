"""Static role → resource → action authorization matrix."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from types import MappingProxyType
from typing import Protocol

from storefront.core.errors import ForbiddenError, UnauthorizedError
from storefront.models.user import Role


class Resource(str, enum.Enum):
    PRODUCT = "Product"
    REVIEW = "Review"
    ORDER = "Order"
    CART = "Cart"
    PAYMENT = "Payment"


class Action(str, enum.Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SEARCH = "search"
    HIDE = "hide"


PermissionMatrix = Mapping[Role, Mapping[Resource, frozenset[Action]]]


def build_matrix(grants_by_role: dict[Role, dict[Resource, list[Action]]]) -> PermissionMatrix:
    """Freeze a nested dict into a read-only matrix."""
    return MappingProxyType(
        {
            role: MappingProxyType({resource: frozenset(actions) for resource, actions in grants.items()})
            for role, grants in grants_by_role.items()
        }
    )


ROLE_PERMISSIONS: PermissionMatrix = build_matrix(
    {
        Role.ADMIN: {
            Resource.PRODUCT: [Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE, Action.HIDE, Action.SEARCH],
            Resource.REVIEW: [Action.VIEW, Action.DELETE],
            Resource.ORDER: [Action.VIEW, Action.UPDATE, Action.DELETE, Action.CREATE],
            Resource.CART: [Action.VIEW],
            Resource.PAYMENT: [Action.VIEW],
        },
        Role.USER: {
            Resource.PRODUCT: [Action.VIEW, Action.SEARCH],
            Resource.REVIEW: [Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE],
            Resource.ORDER: [Action.CREATE, Action.VIEW, Action.DELETE],
            Resource.CART: [Action.VIEW, Action.CREATE, Action.UPDATE, Action.DELETE],
            Resource.PAYMENT: [Action.VIEW],
        },
    }
)


class HasRole(Protocol):
    role: str


class PermissionGuard:
    def __init__(self, matrix: PermissionMatrix = ROLE_PERMISSIONS) -> None:
        self.matrix = matrix

    def is_allowed(self, role: str, resource: Resource, action: Action) -> bool:
        try:
            grants = self.matrix.get(Role(role), {})
        except ValueError:
            return False
        return action in grants.get(resource, frozenset())

    def check(self, identity: HasRole | None, resource: Resource, action: Action) -> None:
        if identity is None or not getattr(identity, "role", None):
            raise UnauthorizedError("Authentication required")
        if not self.is_allowed(identity.role, resource, action):
            raise ForbiddenError("You don't have permission to access this resource")
