from typing import Any, Optional
import datetime
import uuid

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Enum, ForeignKeyConstraint, Index, Integer, PrimaryKeyConstraint, SmallInteger, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from app.libs.formats.datetime import now as get_now

class Base(DeclarativeBase):
    pass


class Role(Base):
    __tablename__ = 'role'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='role_pk'),
        UniqueConstraint('role_name', name='role_unique'),
    )

    role_name: Mapped[str] = mapped_column(String, nullable=False)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    details: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now)

    user_roles: Mapped[list['UserRoles']] = relationship('UserRoles', back_populates='role')


class User(Base):
    __tablename__ = 'user'
    __table_args__ = (
        PrimaryKeyConstraint('id', name='user_pk'),
        UniqueConstraint('email', name='user_unique'),
    )

    fullname: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    password: Mapped[Optional[str]] = mapped_column(String)
    avatar: Mapped[Optional[str]] = mapped_column(String)
    create_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now)
    last_login_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)

    user_roles: Mapped[list['UserRoles']] = relationship('UserRoles', back_populates='user')
    courses_: Mapped[list['Courses']] = relationship('Courses', back_populates='instructor')
    course_enrollments: Mapped[list['CourseEnrollments']] = relationship('CourseEnrollments', back_populates='user')
    certificates: Mapped[list['Certificates']] = relationship('Certificates', back_populates='user')


class UserRoles(Base):
    __tablename__ = 'user_roles'
    __table_args__ = (
    ForeignKeyConstraint(['role_id'], ['role.id'], name='user_roles_role_fk'),
    ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE', name='user_roles_user_fk'),
        PrimaryKeyConstraint('id', name='user_roles_pk'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    create_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    role_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)

    role: Mapped[Optional['Role']] = relationship('Role', back_populates='user_roles')
    user: Mapped[Optional['User']] = relationship('User', back_populates='user_roles')


class Courses(Base):
    __tablename__ = 'courses'
    __table_args__ = (
        CheckConstraint('certificate_completion_requirement BETWEEN 50 AND 100', name='courses_certificate_completion_check'),
        CheckConstraint('certificate_passing_score BETWEEN 0 AND 100', name='courses_certificate_passing_score_check'),
        CheckConstraint("certificate_template IN ('modern', 'classic', 'elegant', 'professional')", name='courses_certificate_template_check'),
    ForeignKeyConstraint(['instructor_id'], ['user.id'], name='courses_user_fk'),
        PrimaryKeyConstraint('id', name='courses_pkey'),
        UniqueConstraint('slug', name='courses_slug_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    instructor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # tổng thời lượng / số bài, tính lại mỗi khi cấu trúc khóa học thay đổi
    total_length_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_lectures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    structure_updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    # 🎓 cấu hình chứng chỉ
    certificate_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    certificate_organization_name: Mapped[Optional[str]] = mapped_column(Text)
    certificate_logo_url: Mapped[Optional[str]] = mapped_column(Text)
    certificate_signed_by_name: Mapped[Optional[str]] = mapped_column(Text)
    certificate_signed_by_title: Mapped[Optional[str]] = mapped_column(Text)
    certificate_signature_url: Mapped[Optional[str]] = mapped_column(Text)
    certificate_template: Mapped[str] = mapped_column(String(20), nullable=False, default='modern')
    certificate_completion_requirement: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=100)
    certificate_passing_score: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=70)

    instructor: Mapped['User'] = relationship('User', back_populates='courses_')
    course_sections: Mapped[list['CourseSections']] = relationship('CourseSections', back_populates='course', order_by='CourseSections.position')
    course_enrollments: Mapped[list['CourseEnrollments']] = relationship('CourseEnrollments', back_populates='course')
    lessons: Mapped[list['Lessons']] = relationship('Lessons', back_populates='course')
    certificates: Mapped[list['Certificates']] = relationship('Certificates', back_populates='course')


class CourseSections(Base):
    __tablename__ = 'course_sections'
    __table_args__ = (
    ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE', name='course_sections_course_id_fkey'),
        PrimaryKeyConstraint('id', name='course_sections_pkey'),
        Index('idx_course_sections_course_position', 'course_id', 'position'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    course_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    course: Mapped[Optional['Courses']] = relationship('Courses', back_populates='course_sections')
    lessons: Mapped[list['Lessons']] = relationship('Lessons', back_populates='section', order_by='Lessons.position')


class Lessons(Base):
    __tablename__ = 'lessons'
    __table_args__ = (
        CheckConstraint('duration >= 0', name='lessons_duration_check'),
        CheckConstraint('quiz_passing_score BETWEEN 0 AND 100', name='lessons_quiz_passing_score_check'),
    ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE', name='lessons_courses_fk'),
    ForeignKeyConstraint(['section_id'], ['course_sections.id'], ondelete='CASCADE', name='lessons_section_id_fkey'),
        PrimaryKeyConstraint('id', name='lessons_pkey'),
        Index('idx_lessons_section_position', 'section_id', 'position'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    lesson_type: Mapped[str] = mapped_column(Enum('video', 'quiz', 'note', name='lesson_type_enum'), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    section_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    course_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_preview: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # giây, dùng làm trọng số khi tính tiến độ
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    note_content: Mapped[Optional[str]] = mapped_column(Text)
    quiz_is_graded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quiz_passing_score: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=70)
    quiz_time_limit: Mapped[Optional[int]] = mapped_column(Integer)
    quiz_instructions: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now)
    updated_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    course: Mapped[Optional['Courses']] = relationship('Courses', back_populates='lessons')
    section: Mapped[Optional['CourseSections']] = relationship('CourseSections', back_populates='lessons')
    lesson_quizzes: Mapped[list['LessonQuizzes']] = relationship('LessonQuizzes', back_populates='lesson', order_by='LessonQuizzes.position', cascade='all', passive_deletes=True)
    # 🧩 Auto relationship (parent → child): LessonVideos
    lesson_videos: Mapped[Optional['LessonVideos']] = relationship(
        'LessonVideos', back_populates='lessons', uselist=False, cascade='all', passive_deletes=True)


class LessonVideos(Base):
    __tablename__ = 'lesson_videos'
    __table_args__ = (
    ForeignKeyConstraint(['lesson_id'], ['lessons.id'], ondelete='CASCADE', name='lesson_videos_lessons_fk'),
        PrimaryKeyConstraint('lesson_id', name='lesson_videos_pkey'),
    )

    lesson_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    video_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_id: Mapped[Optional[str]] = mapped_column(String)
    thumbnail_url: Mapped[Optional[str]] = mapped_column(Text)
    source_type: Mapped[Optional[str]] = mapped_column(String, default='upload')
    # 🧩 Auto relationship (child → parent): Lessons
    lessons: Mapped['Lessons'] = relationship(
        'Lessons', back_populates='lesson_videos', uselist=False)


class LessonQuizzes(Base):
    __tablename__ = 'lesson_quizzes'
    __table_args__ = (
        CheckConstraint("question_type IN ('single', 'multiple')", name='lesson_quizzes_type_check'),
    ForeignKeyConstraint(['lesson_id'], ['lessons.id'], ondelete='CASCADE', name='lesson_quizzes_lesson_id_fkey'),
        PrimaryKeyConstraint('id', name='lesson_quizzes_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(String(10), nullable=False, default='single')
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    lesson_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now)

    lesson: Mapped[Optional['Lessons']] = relationship('Lessons', back_populates='lesson_quizzes')
    lesson_quiz_options: Mapped[list['LessonQuizOptions']] = relationship('LessonQuizOptions', back_populates='quiz', order_by='LessonQuizOptions.position', cascade='all', passive_deletes=True)


class LessonQuizOptions(Base):
    __tablename__ = 'lesson_quiz_options'
    __table_args__ = (
    ForeignKeyConstraint(['quiz_id'], ['lesson_quizzes.id'], ondelete='CASCADE', name='lesson_quiz_options_quiz_id_fkey'),
        PrimaryKeyConstraint('id', name='lesson_quiz_options_pkey'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    text_: Mapped[str] = mapped_column('text', Text, nullable=False)
    position: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    quiz_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    quiz: Mapped[Optional['LessonQuizzes']] = relationship('LessonQuizzes', back_populates='lesson_quiz_options')


class CourseEnrollments(Base):
    __tablename__ = 'course_enrollments'
    __table_args__ = (
        CheckConstraint('overall_progress BETWEEN 0 AND 100', name='course_enrollments_progress_check'),
        CheckConstraint('total_time_spent >= 0', name='course_enrollments_time_check'),
    ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE', name='course_enrollments_course_id_fkey'),
    ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE', name='course_enrollments_user_id_fkey'),
        PrimaryKeyConstraint('id', name='course_enrollments_pkey'),
        UniqueConstraint('user_id', 'course_id', name='course_enrollments_user_course_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    enrolled_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    overall_progress: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    total_time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_accessed_lesson_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    last_accessed_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    # None = chưa ghi nhận tiến độ nào
    last_progress_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    progress_synced_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)
    has_certificate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text('1'))

    course: Mapped['Courses'] = relationship('Courses', back_populates='course_enrollments')
    user: Mapped['User'] = relationship('User', back_populates='course_enrollments')
    lesson_progress: Mapped[list['LessonProgress']] = relationship('LessonProgress', back_populates='enrollment', cascade='all', passive_deletes=True)

    # 🔒 optimistic lock: UPDATE ... WHERE version = :old
    __mapper_args__ = {'version_id_col': version}


class LessonProgress(Base):
    __tablename__ = 'lesson_progress'
    __table_args__ = (
        CheckConstraint('time_spent >= 0', name='lesson_progress_time_check'),
    ForeignKeyConstraint(['enrollment_id'], ['course_enrollments.id'], ondelete='CASCADE', name='lesson_progress_enrollment_id_fkey'),
        PrimaryKeyConstraint('id', name='lesson_progress_pkey'),
        UniqueConstraint('enrollment_id', 'lesson_id', name='lesson_progress_unique'),
        Index('idx_lesson_progress_user_course', 'user_id', 'course_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    enrollment_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    # không có FK: bài học bị xóa thì bản ghi trở thành "mồ côi" và bị bỏ qua khi tính
    lesson_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    completed_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    enrollment: Mapped['CourseEnrollments'] = relationship('CourseEnrollments', back_populates='lesson_progress')


class QuizAttempts(Base):
    __tablename__ = 'quiz_attempts'
    __table_args__ = (
        CheckConstraint('score BETWEEN 0 AND 100', name='quiz_attempts_score_check'),
    ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE', name='quiz_attempts_course_id_fkey'),
    ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE', name='quiz_attempts_user_id_fkey'),
        PrimaryKeyConstraint('id', name='quiz_attempts_pkey'),
        Index('idx_quiz_attempts_user_course_lesson', 'user_id', 'course_id', 'lesson_id'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    lesson_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    lesson_title: Mapped[str] = mapped_column(Text, nullable=False)
    # [{question_index, selected_answers, is_correct}]
    answers: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    correct_answers: Mapped[int] = mapped_column(Integer, nullable=False)
    is_graded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    passed: Mapped[Optional[bool]] = mapped_column(Boolean)
    passing_score: Mapped[Optional[int]] = mapped_column(SmallInteger)
    time_taken: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=get_now)


class Certificates(Base):
    __tablename__ = 'certificates'
    __table_args__ = (
    ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE', name='certificates_course_id_fkey'),
    ForeignKeyConstraint(['user_id'], ['user.id'], ondelete='CASCADE', name='certificates_user_id_fkey'),
        PrimaryKeyConstraint('id', name='certificates_pkey'),
        UniqueConstraint('certificate_id', name='certificates_certificate_id_key'),
        # chặn 2 request cấp chứng chỉ song song cho cùng 1 cặp
        UniqueConstraint('user_id', 'course_id', name='certificates_user_course_key'),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    certificate_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    course_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    student_name: Mapped[str] = mapped_column(Text, nullable=False)
    course_title: Mapped[str] = mapped_column(Text, nullable=False)
    instructor_name: Mapped[Optional[str]] = mapped_column(Text)
    grade: Mapped[str] = mapped_column(String(8), nullable=False)
    final_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    skills: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    completed_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False)
    issued_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    # snapshot cấu hình lúc cấp, không đổi theo khóa học
    organization_name: Mapped[str] = mapped_column(Text, nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(Text)
    signed_by_name: Mapped[Optional[str]] = mapped_column(Text)
    signed_by_title: Mapped[Optional[str]] = mapped_column(Text)
    signature_url: Mapped[Optional[str]] = mapped_column(Text)
    template: Mapped[str] = mapped_column(String(20), nullable=False, default='modern')
    meta: Mapped[dict[str, Any]] = mapped_column('metadata', JSON, nullable=False, default=dict)
    updated_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, default=get_now, onupdate=get_now)

    course: Mapped['Courses'] = relationship('Courses', back_populates='certificates')
    user: Mapped['User'] = relationship('User', back_populates='certificates')
