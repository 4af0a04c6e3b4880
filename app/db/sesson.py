# app/db/sesson.py
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.settings import settings

# ✅ Tạo engine async
engine = create_async_engine(
    settings.DATABASE_ASYNC_URL,
    echo=settings.DATABASE_ECHO,  # bật True chỉ khi debug
    pool_pre_ping=True,  # tự kiểm tra connection còn sống
)

# ✅ Tạo session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,  # 👈 giữ dữ liệu sau commit, tránh lỗi greenlet
)

# ✅ Dependency cho FastAPI


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
