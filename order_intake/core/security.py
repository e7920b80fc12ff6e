# order_intake/core/security.py
"""
凭证工具（统一入口）：

- 正式路径：PyJWT，HS256
- 强制规则：
    * 非 dev 环境必须显式配置 JWT_SECRET，禁止使用 dev 默认 secret
    * 任何环境禁止 alg=none
- 登录/注册不在本服务范围内，这里只负责签发（运维/测试用）与解码
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt

from order_intake.core.config import AppSettings, get_settings

_DEV_SECRETS = {
    "",
    "dev-temp-secret",
    "dev-secret-change-me",
}


def assert_secure_settings(settings: AppSettings) -> None:
    """启动即执行：非 dev 环境拒绝默认 secret / alg=none。"""
    if settings.JWT_ALG.lower() == "none":
        raise RuntimeError("SECURITY ERROR: JWT_ALG=none is not allowed")

    if settings.ENV != "dev" and settings.JWT_SECRET in _DEV_SECRETS:
        raise RuntimeError(
            "SECURITY ERROR: JWT_SECRET is not properly configured.\n\n"
            f"ENV = {settings.ENV!r}\n"
            "You are running in a non-dev environment, but JWT_SECRET is missing "
            "or still using a development default value.\n"
        )


def create_access_token(
    data: Dict[str, Any],
    expires_minutes: Optional[int] = None,
    *,
    settings: Optional[AppSettings] = None,
) -> str:
    s = settings or get_settings()
    payload = dict(data)
    payload["exp"] = int(time.time()) + 60 * (expires_minutes or s.ACCESS_TOKEN_EXPIRE_MINUTES)
    return jwt.encode(payload, s.JWT_SECRET, algorithm=s.JWT_ALG)


def decode_access_token(token: str, *, settings: Optional[AppSettings] = None) -> Optional[Dict[str, Any]]:
    """无效 / 过期 / 签名不符 → None，绝不抛出。"""
    s = settings or get_settings()
    try:
        out = jwt.decode(token, s.JWT_SECRET, algorithms=[s.JWT_ALG])
    except jwt.PyJWTError:
        return None
    return out if isinstance(out, dict) else None
