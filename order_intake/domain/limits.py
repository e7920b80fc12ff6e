# order_intake/domain/limits.py
# 字段上限：校验层与表结构共用同一组数字
from __future__ import annotations

from decimal import Decimal

# Numeric(12, 2)
MAX_AMOUNT = Decimal("9999999999.99")

MAX_PRODUCT_LEN = 128
MAX_NAME_LEN = 255
MAX_EMAIL_LEN = 254
MAX_ADDRESS_LEN = 1000
MAX_TRACKING_LEN = 128
MAX_CANCEL_REASON_LEN = 1000

# "email:" 前缀 + 邮箱；其余身份键都是定长摘要
MAX_BUYER_KEY_LEN = 6 + MAX_EMAIL_LEN
