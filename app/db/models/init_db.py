import asyncio

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.enum import RoleName
from app.core.settings import settings
from app.db.models.database import Base, Role


async def init_db(url: str = settings.DATABASE_ASYNC_URL) -> None:
    engine = create_async_engine(url, echo=settings.DATABASE_ECHO)

    # 1) Tạo toàn bộ bảng từ ORM
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        # 2) Seed các role mặc định nếu thiếu
        existing = set(
            (await conn.execute(select(Role.role_name)))
            .scalars()
            .all()
        )
        missing = [r.value for r in RoleName if r.value not in existing]
        if missing:
            await conn.execute(
                Role.__table__.insert(), [{"role_name": name} for name in missing]
            )

    await engine.dispose()
    logger.success("🎉 Khởi tạo cấu trúc cơ sở dữ liệu thành công!")


if __name__ == "__main__":
    asyncio.run(init_db())
