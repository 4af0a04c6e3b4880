# app/core/deps.py
import uuid
from typing import List, Optional

from fastapi import Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.context import get_request
from app.core.security import SecurityService
from app.db.models.database import Role, User, UserRoles
from app.db.sesson import get_session
from app.libs.formats.datetime import now as get_now


class AuthorizationService:
    def __init__(
        self,
        db: AsyncSession = Depends(get_session),
        security: SecurityService = Depends(SecurityService),
    ):
        self.db = db
        self.security = security

    # ==============================
    # 🧩 CORE AUTH CHECKS
    # ==============================

    async def get_current_user(self) -> User:
        """Lấy user hiện tại từ cookie access_token."""
        request = get_request()  # ✅ Lấy đúng thời điểm đang có request
        token = request.cookies.get("access_token")

        if not token:
            raise HTTPException(status_code=401, detail="Token not found in cookies")

        try:
            dict_token = await self.security.decode_access_token(token)
            user_id = dict_token.get("sub")
            if not user_id:
                raise HTTPException(status_code=401, detail="Invalid token")

            stmt = (
                select(User)
                .where(User.id == uuid.UUID(str(user_id)))
                .options(selectinload(User.user_roles).selectinload(UserRoles.role))
            )
            user = await self.db.scalar(stmt)
            if not user:
                raise HTTPException(status_code=401, detail="Invalid token")

            user.last_login_at = get_now()
            await self.db.commit()
            return user

        except Exception:
            raise HTTPException(status_code=401, detail="Invalid token")

    # ==============================
    # 🧩 ROLE-BASED ACCESS CONTROL
    # ==============================

    async def require_role(self, required_roles: Optional[List[str]] = None) -> User:
        """Yêu cầu user có quyền cụ thể (vd: LECTURER)."""
        current_user = await self.get_current_user()

        if not required_roles:
            return current_user

        user_roles = await self.get_list_role_in_user(self.db, current_user)
        if not any(role in user_roles for role in required_roles):
            raise HTTPException(status_code=403, detail="Permission denied")

        return current_user

    @staticmethod
    async def get_list_role_in_user(db: AsyncSession, user: User) -> List[str]:
        rows = await db.execute(
            select(Role.role_name)
            .join(UserRoles, UserRoles.role_id == Role.id)
            .where(UserRoles.user_id == user.id)
        )
        return [r for r in rows.scalars().all()]
