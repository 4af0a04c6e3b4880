from enum import Enum


class LectureType(str, Enum):
    """Loại bài giảng trong một chương."""
    VIDEO = "video"
    QUIZ = "quiz"
    NOTE = "note"


class QuestionType(str, Enum):
    SINGLE = "single"      # đúng 1 đáp án
    MULTIPLE = "multiple"  # chọn đủ tập đáp án đúng


class CertificateTemplate(str, Enum):
    MODERN = "modern"
    CLASSIC = "classic"
    ELEGANT = "elegant"
    PROFESSIONAL = "professional"


class CertificateGrade(str, Enum):
    """Xếp loại chứng chỉ, theo thứ tự giảm dần."""
    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C_PLUS = "C+"
    C = "C"
    PASS = "Pass"


class RoleName(str, Enum):
    ADMIN = "ADMIN"
    LECTURER = "LECTURER"
    USER = "USER"
