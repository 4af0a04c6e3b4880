from typing import Awaitable, Callable, Optional, TypeVar

from fastapi import HTTPException
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.context import get_request_id
from app.core.exceptions import ConflictError
from app.core.settings import settings

T = TypeVar("T")


async def run_with_retry(
    db: AsyncSession,
    action: Callable[[], Awaitable[T]],
    label: str,
    max_retries: Optional[int] = None,
) -> T:
    """
    ✅ Chạy 1 giao dịch đọc-sửa-ghi, commit khi xong:
    - StaleDataError (version đổi) / IntegrityError (trùng unique) → rollback, chạy lại
    - Hết số lần thử → ConflictError (503)
    - HTTPException → rollback, ném tiếp (không ghi nửa chừng)
    `action` phải tự đọc lại dữ liệu ở mỗi lần chạy.
    """
    retries = max_retries or settings.PROGRESS_MAX_RETRIES

    for attempt in range(1, retries + 1):
        try:
            result = await action()
            await db.commit()
            return result
        except HTTPException:
            await db.rollback()
            raise
        except (StaleDataError, IntegrityError) as e:
            await db.rollback()
            logger.warning(f"⚠ {label}: xung đột ghi, thử lại {attempt}/{retries} ({e.__class__.__name__})")

    logger.error(f"❌ {label}: hết {retries} lần thử (request_id={get_request_id()})")
    raise ConflictError()
