# order_intake/services/order_validator.py
from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from order_intake.domain.errors import ValidationError
from order_intake.domain.limits import (
    MAX_ADDRESS_LEN,
    MAX_AMOUNT,
    MAX_EMAIL_LEN,
    MAX_NAME_LEN,
    MAX_PRODUCT_LEN,
)
from order_intake.domain.types import Location, ValidatedOrderInput

_CENT = Decimal("0.01")
_MIN_ADDRESS_LEN = 10


def _s(v: Any) -> Optional[str]:
    if v is None or not isinstance(v, str):
        return None
    t = v.strip()
    return t if t else None


def _to_decimal(v: Any) -> Optional[Decimal]:
    """
    数值强转：int / float / Decimal / 数字字符串。
    bool、NaN、Infinity 一律视为非数值。
    """
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        v = v.strip()
        if not v:
            return None
    try:
        d = Decimal(str(v))
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d


def _to_float(v: Any) -> Optional[float]:
    d = _to_decimal(v)
    if d is None:
        return None
    f = float(d)
    return f if math.isfinite(f) else None


def _email_ok(email: str) -> bool:
    # local@domain：至少一个 @，两侧非空，不含空白
    if any(c.isspace() for c in email):
        return False
    local, sep, domain = email.rpartition("@")
    return bool(sep) and bool(local) and bool(domain)


def _parse_location(raw: Any) -> Location:
    if not isinstance(raw, Mapping):
        raise ValidationError("location must be an object with lat/lng", "INVALID_GPS")

    lat = _to_float(raw.get("lat"))
    lng = _to_float(raw.get("lng"))
    if lat is None or lng is None:
        raise ValidationError("location.lat and location.lng must both be numeric", "INVALID_GPS")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError("location.lat must be within [-90, 90]", "INVALID_GPS")
    if not -180.0 <= lng <= 180.0:
        raise ValidationError("location.lng must be within [-180, 180]", "INVALID_GPS")

    accuracy: Optional[float] = None
    if raw.get("accuracy") is not None:
        accuracy = _to_float(raw.get("accuracy"))
        if accuracy is None or accuracy < 0:
            raise ValidationError("location.accuracy must be a non-negative number", "INVALID_GPS")

    return Location(lat=lat, lng=lng, accuracy=accuracy)


def validate_order(raw: Mapping[str, Any], *, idempotency_key: Optional[str] = None) -> ValidatedOrderInput:
    """
    建单入参校验（纯函数，无 I/O）。

    按固定顺序短路，保证错误码确定：
      1) product          → MISSING_PRODUCT / INVALID_PRODUCT（过长）
      2) amount > 0       → INVALID_AMOUNT（含超上限、四舍五入到分后为 0）
      3) name             → MISSING_NAME / INVALID_NAME（过长）
      4) shippingAddress  → INVALID_ADDRESS（trim 后 10..1000 字符）
      5) email（可选）     → INVALID_EMAIL
      6) location（可选）  → INVALID_GPS
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("request body must be a JSON object", "MISSING_PRODUCT")

    product = _s(raw.get("product"))
    if product is None:
        raise ValidationError("product is required", "MISSING_PRODUCT")
    if len(product) > MAX_PRODUCT_LEN:
        raise ValidationError(f"product must be at most {MAX_PRODUCT_LEN} characters", "INVALID_PRODUCT")

    amount = _to_decimal(raw.get("amount"))
    if amount is None or amount <= 0:
        raise ValidationError("amount must be a positive number", "INVALID_AMOUNT")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"amount must not exceed {MAX_AMOUNT}", "INVALID_AMOUNT")
    # 金额按分 ROUND_HALF_UP；不足半分的正数四舍五入后为 0，明确拒绝
    amount = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise ValidationError("amount is below the smallest currency unit (0.01)", "INVALID_AMOUNT")

    buyer_name = _s(raw.get("name", raw.get("buyerName")))
    if buyer_name is None:
        raise ValidationError("name is required", "MISSING_NAME")
    if len(buyer_name) > MAX_NAME_LEN:
        raise ValidationError(f"name must be at most {MAX_NAME_LEN} characters", "INVALID_NAME")

    address = _s(raw.get("shippingAddress"))
    if address is None or len(address) < _MIN_ADDRESS_LEN:
        raise ValidationError(
            f"shippingAddress must be at least {_MIN_ADDRESS_LEN} characters",
            "INVALID_ADDRESS",
        )
    if len(address) > MAX_ADDRESS_LEN:
        raise ValidationError(
            f"shippingAddress must be at most {MAX_ADDRESS_LEN} characters",
            "INVALID_ADDRESS",
        )

    email: Optional[str] = None
    raw_email = raw.get("email", raw.get("buyerEmail"))
    if raw_email is not None and raw_email != "":
        email = _s(raw_email) if isinstance(raw_email, str) else None
        if email is None or len(email) > MAX_EMAIL_LEN or not _email_ok(email):
            raise ValidationError("email is not a valid address", "INVALID_EMAIL")

    location: Optional[Location] = None
    if raw.get("location") is not None:
        location = _parse_location(raw.get("location"))

    key = _s(idempotency_key) or _s(raw.get("idempotencyKey"))
    ts = raw.get("timestamp")

    return ValidatedOrderInput(
        product=product,
        amount=amount,
        buyer_name=buyer_name,
        shipping_address=address,
        buyer_email=email,
        location=location,
        idempotency_key=key,
        client_timestamp=ts if isinstance(ts, str) else None,
    )
