from datetime import timedelta
from typing import Any, Dict, Optional

import jwt

from app.core.settings import settings
from app.libs.formats.datetime import now_tzinfo

TOKEN_TYPE_ACCESS = "access"


class SecurityService:
    def __init__(self):
        self.secret_key = settings.SECRET_KEY
        self.algorithm = settings.ALGORITHM
        self.access_token_expire_minutes = settings.ACCESS_TOKEN_EXPIRE_MINUTES

    # 🔐 JWT
    async def create_access_token(
        self, sub: str, expires_minutes: Optional[int] = None
    ) -> str:
        if not self.secret_key:
            raise RuntimeError("SECRET_KEY chưa được cấu hình")

        minutes = expires_minutes if expires_minutes is not None else self.access_token_expire_minutes
        issued_at = now_tzinfo()
        payload: Dict[str, Any] = {
            "sub": sub,
            "type": TOKEN_TYPE_ACCESS,
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=minutes),
        }
        return str(jwt.encode(payload, self.secret_key, algorithm=self.algorithm))

    async def decode_access_token(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise ValueError("Token expired")
        except jwt.InvalidTokenError:
            raise ValueError("Invalid token")

        # token khác loại (refresh, reset mật khẩu...) không dùng để gọi API
        if payload.get("type") != TOKEN_TYPE_ACCESS:
            raise ValueError("Invalid token type")
        return payload
