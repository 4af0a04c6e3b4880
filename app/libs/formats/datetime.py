import math
from datetime import datetime, timedelta, timezone

# Múi giờ Việt Nam (UTC+7)
VIETNAM_TIMEZONE = timezone(timedelta(hours=7))


def now() -> datetime:
    """Lấy datetime hiện tại với múi giờ Hồ Chí Minh (UTC+7) và bỏ tzinfo (naive).
    Đây là hàm chuẩn cho toàn bộ dự án.
    """
    return datetime.now(VIETNAM_TIMEZONE).replace(tzinfo=None)


def now_tzinfo() -> datetime:
    return datetime.now(VIETNAM_TIMEZONE)


def days_between(start: datetime, end: datetime) -> int:
    """Số ngày làm tròn lên, tối thiểu 0."""
    return max(0, math.ceil((end - start).total_seconds() / 86400))
