import uuid
from datetime import date, datetime, timezone
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, Text, Boolean, ForeignKey, JSON, Float, Integer, DateTime, Date, UniqueConstraint


def _uuid() -> str: return str(uuid.uuid4())
def _now() -> datetime: return datetime.now(timezone.utc)


class Base(DeclarativeBase): pass


class Batch(Base):
    __tablename__ = "batches"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, default="live")
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    exams: Mapped[list["Exam"]] = relationship(back_populates="batch", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"
    uid: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String)
    roll: Mapped[str] = mapped_column(String, unique=True, index=True)
    password: Mapped[str] = mapped_column(String)
    enrolled_batches: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class Admin(Base):
    __tablename__ = "admins"
    uid: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String, unique=True, index=True)
    password: Mapped[str] = mapped_column(String)
    role: Mapped[str] = mapped_column(String, default="admin")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class QuestionFile(Base):
    __tablename__ = "question_files"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    display_name: Mapped[str] = mapped_column(String)
    original_filename: Mapped[str | None] = mapped_column(String, nullable=True)
    total_questions: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    questions: Mapped[list["Question"]] = relationship(
        back_populates="file", cascade="all, delete-orphan", order_by="Question.order_index")


class Question(Base):
    __tablename__ = "questions"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    file_id: Mapped[str] = mapped_column(String(36), ForeignKey("question_files.id", ondelete="CASCADE"), index=True)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    question_text: Mapped[str] = mapped_column(Text)
    option1: Mapped[str] = mapped_column(Text, default="")
    option2: Mapped[str] = mapped_column(Text, default="")
    option3: Mapped[str] = mapped_column(Text, default="")
    option4: Mapped[str | None] = mapped_column(Text, nullable=True)
    option5: Mapped[str | None] = mapped_column(Text, nullable=True)
    answer: Mapped[str] = mapped_column(String)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject: Mapped[str | None] = mapped_column(String, nullable=True)
    paper: Mapped[str | None] = mapped_column(String, nullable=True)
    chapter: Mapped[str | None] = mapped_column(String, nullable=True)
    highlight: Mapped[str | None] = mapped_column(String, nullable=True)
    type: Mapped[int] = mapped_column(Integer, default=0)
    question_marks: Mapped[str | None] = mapped_column(String, nullable=True)
    file: Mapped[QuestionFile] = relationship(back_populates="questions")

    def options(self) -> list[str]:
        return [o for o in (self.option1, self.option2, self.option3, self.option4, self.option5) if o]


class Exam(Base):
    __tablename__ = "exams"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("batches.id", ondelete="CASCADE"), nullable=True, index=True)
    file_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("question_files.id", ondelete="SET NULL"), nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    marks_per_question: Mapped[float] = mapped_column(Float, default=1.0)
    negative_marks_per_wrong: Mapped[float] = mapped_column(Float, default=0.0)
    start_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_practice: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(String, default="live")
    number_of_attempts: Mapped[str] = mapped_column(String, default="multiple")
    shuffle_questions: Mapped[bool] = mapped_column(Boolean, default=False)
    mandatory_subjects: Mapped[list | None] = mapped_column(JSON, nullable=True)
    optional_subjects: Mapped[list | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    batch: Mapped[Batch | None] = relationship(back_populates="exams")
    submissions: Mapped[list["StudentExam"]] = relationship(back_populates="exam", cascade="all, delete-orphan")


class StudentExam(Base):
    __tablename__ = "student_exams"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    exam_id: Mapped[str] = mapped_column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), index=True)
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uid", ondelete="CASCADE"), index=True)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    correct_answers: Mapped[int] = mapped_column(Integer, default=0)
    wrong_answers: Mapped[int] = mapped_column(Integer, default=0)
    unattempted: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    exam: Mapped[Exam] = relationship(back_populates="submissions")
    student: Mapped[User] = relationship()
    responses: Mapped[list["StudentResponse"]] = relationship(back_populates="student_exam", cascade="all, delete-orphan")


class StudentResponse(Base):
    __tablename__ = "student_responses"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    student_exam_id: Mapped[str] = mapped_column(String(36), ForeignKey("student_exams.id", ondelete="CASCADE"), index=True)
    question_id: Mapped[str] = mapped_column(String(36))
    selected_option: Mapped[str | None] = mapped_column(String, nullable=True)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    marks_obtained: Mapped[float] = mapped_column(Float, default=0.0)
    student_exam: Mapped[StudentExam] = relationship(back_populates="responses")


class StudentAttendance(Base):
    __tablename__ = "student_attendance"
    __table_args__ = (UniqueConstraint("student_id", "batch_id", "attendance_date", name="uq_attendance_day"),)
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uid", ondelete="CASCADE"), index=True)
    batch_id: Mapped[str] = mapped_column(String(36), ForeignKey("batches.id", ondelete="CASCADE"), index=True)
    attendance_date: Mapped[date] = mapped_column(Date, index=True)
    present: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class StudentTask(Base):
    __tablename__ = "student_tasks"
    __table_args__ = (UniqueConstraint("student_id", "batch_id", "task_date", name="uq_task_day"),)
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.uid", ondelete="CASCADE"), index=True)
    batch_id: Mapped[str] = mapped_column(String(36), ForeignKey("batches.id", ondelete="CASCADE"), index=True)
    task_date: Mapped[date] = mapped_column(Date, index=True)
    mandatory_done: Mapped[bool] = mapped_column(Boolean, default=False)
    mandatory_url: Mapped[str | None] = mapped_column(String, nullable=True)
    optional_done: Mapped[bool] = mapped_column(Boolean, default=False)
    optional_url: Mapped[str | None] = mapped_column(String, nullable=True)
    todo_done: Mapped[bool] = mapped_column(Boolean, default=False)
    todo_url: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)
