# order_intake/services/access_guard.py
from __future__ import annotations

import logging
from typing import Optional

from order_intake.core.config import AppSettings
from order_intake.core.security import decode_access_token
from order_intake.domain.errors import ForbiddenError, UnauthorizedError
from order_intake.domain.types import ANONYMOUS, Actor, ActorKind, Order

logger = logging.getLogger("orderintake.auth")

_ROLE_TO_KIND = {
    "customer": ActorKind.CUSTOMER,
    "admin": ActorKind.ADMIN,
}


def classify(credential: Optional[str], *, settings: Optional[AppSettings] = None) -> Actor:
    """
    凭证 → 调用方分类（anonymous / customer / admin）。
    无效 / 过期 / 角色未知的凭证一律降为 anonymous，但记住“带过凭证”。
    """
    token = (credential or "").strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    if not token:
        return ANONYMOUS

    payload = decode_access_token(token, settings=settings)
    if not payload:
        logger.info("credential rejected (invalid or expired), treating as anonymous")
        return Actor(kind=ActorKind.ANONYMOUS, credential_supplied=True)

    kind = _ROLE_TO_KIND.get(str(payload.get("role") or "").lower())
    sub = payload.get("sub")
    if kind is None or not sub:
        return Actor(kind=ActorKind.ANONYMOUS, credential_supplied=True)

    return Actor(kind=kind, identity=str(sub), credential_supplied=True)


def _deny(actor: Actor, message: str) -> None:
    if not actor.credential_supplied:
        raise UnauthorizedError("authentication required")
    raise ForbiddenError(message)


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        _deny(actor, "admin privilege required")


def require_authenticated(actor: Actor) -> None:
    """cancel / get 的前置检查：匿名且未带凭证 → 401。"""
    if actor.kind is ActorKind.ANONYMOUS and not actor.credential_supplied:
        raise UnauthorizedError("authentication required")


def is_original_buyer(actor: Actor, order: Order) -> bool:
    if actor.kind is not ActorKind.CUSTOMER or not actor.identity:
        return False
    if order.customer_id and actor.identity == order.customer_id:
        return True
    if order.buyer_email and actor.identity.lower() == order.buyer_email.lower():
        return True
    return False


def require_buyer_or_admin(actor: Actor, order: Order) -> None:
    if actor.is_admin or is_original_buyer(actor, order):
        return
    _deny(actor, "only an admin or the original buyer may access this order")
