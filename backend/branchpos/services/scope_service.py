"""
Order Scope Service: principal to row-level filter

WHY: Every order operation must be confined to the caller's tenant. Instead
of re-deriving branch/role rules in each query, the caller's principal is
resolved once into an OrderScope and that scope filters every read and
write that follows.

SCOPE RULES:
1. Privileged roles (admin, shop_owner) see every branch of their shop
2. Every other role sees only its assigned branch
3. A non-privileged user without a branch cannot touch orders at all
4. Out-of-scope rows are reported as "not found", never as "forbidden",
   so existence in another tenant is not revealed

USAGE:
    scope = resolve_scope(principal)
    order = scoped_orders(scope).filter(Order.id == order_id).first()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import AuthorizationError, NotFoundError
from ..extensions import db
from ..models import Branch, Order, Store
from ..models.auth import PRIVILEGED_ROLES


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as supplied by the session layer."""
    user_id: int
    role: str
    shop_id: int | None
    branch_id: int | None = None

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


@dataclass(frozen=True)
class OrderScope:
    """Concrete filter applied to every order read and write."""
    shop_id: int
    branch_id: int | None  # None means the whole shop

    def allows_branch(self, branch_id: int | None) -> bool:
        return self.branch_id is None or self.branch_id == branch_id


def resolve_scope(principal: Principal) -> OrderScope:
    """
    Resolve the caller's order scope.

    Raises AuthorizationError if the principal has no shop, or is a
    non-privileged user without a branch.
    """
    if principal.shop_id is None:
        raise AuthorizationError("User is not assigned to a shop")

    if principal.is_privileged:
        return OrderScope(shop_id=principal.shop_id, branch_id=None)

    if principal.branch_id is None:
        raise AuthorizationError("User is not assigned to a branch")

    return OrderScope(shop_id=principal.shop_id, branch_id=principal.branch_id)


def require_branch_access(scope: OrderScope, branch_id: int | None) -> None:
    """
    Reject an explicit branch_id outside the caller's scope.

    Non-privileged users may only name their own branch.
    """
    if branch_id is None:
        return
    if not scope.allows_branch(branch_id):
        logger.warning(
            "Branch %s requested outside scope (shop=%s, branch=%s)",
            branch_id, scope.shop_id, scope.branch_id,
        )
        raise AuthorizationError("Invalid branch ID")


def scoped_orders(scope: OrderScope, query=None):
    """Order query filtered to the scope's shop and, if set, its branch."""
    if query is None:
        query = db.session.query(Order)
    query = query.join(Branch, Order.branch_id == Branch.id).filter(Branch.shop_id == scope.shop_id)
    if scope.branch_id is not None:
        query = query.filter(Order.branch_id == scope.branch_id)
    return query


def require_store_in_scope(scope: OrderScope, store_id: int) -> Store:
    """
    Validate that a store exists and sits inside the caller's scope.

    SECURITY: call this before using a store_id from client input.
    """
    query = (
        db.session.query(Store)
        .join(Branch, Store.branch_id == Branch.id)
        .filter(Store.id == store_id, Branch.shop_id == scope.shop_id)
    )
    if scope.branch_id is not None:
        query = query.filter(Store.branch_id == scope.branch_id)

    store = query.first()
    if not store:
        logger.warning("Store %s not found in scope (shop=%s, branch=%s)", store_id, scope.shop_id, scope.branch_id)
        raise NotFoundError("Invalid store ID or unauthorized access")
    return store
