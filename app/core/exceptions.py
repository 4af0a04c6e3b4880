from typing import Any, Optional

from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    """Khóa học / đăng ký / bài học / chứng chỉ không tồn tại."""

    def __init__(self, detail: str = "Không tìm thấy dữ liệu"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class IneligibleError(HTTPException):
    """Kết quả nghiệp vụ dự kiến (chưa đủ điều kiện), không phải lỗi hệ thống."""

    def __init__(self, reason: str, certificate: Optional[Any] = None):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=reason)
        self.reason = reason
        self.certificate = certificate


class ConflictError(HTTPException):
    """Ghi đồng thời, đã retry hết số lần cho phép."""

    def __init__(
        self,
        detail: str = "Dữ liệu đang được cập nhật, vui lòng thử lại",
        retry_after: int = 1,
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            headers={"Retry-After": str(retry_after)},
        )


class InvalidInputError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
