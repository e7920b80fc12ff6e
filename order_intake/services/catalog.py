# order_intake/services/catalog.py
from __future__ import annotations

from typing import Iterable


class StaticCatalog:
    """配置驱动的商品目录（外部目录服务的默认实现），key 大小写不敏感。"""

    def __init__(self, products: Iterable[str]):
        self._keys = {p.strip().lower() for p in products if p and p.strip()}

    async def exists(self, product: str) -> bool:
        return product.strip().lower() in self._keys
