import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from examify.core.auth import create_token, STUDENT, ADMIN, MODERATOR
from examify.core.database import engine, SessionLocal, get_db
from examify.main import app
from examify.models.orm import Base, User, Admin, Batch, Exam, StudentExam
from examify.services.csv_import import parse_questions_csv
from examify.services.questions import store_question_file

QUESTIONS_CSV = (
    "question,option1,option2,option3,option4,answer,subject\n"
    "২ + ২ = ?,3,4,5,6,2,math\n"
    "Capital of Bangladesh?,Dhaka,Khulna,Sylhet,Rajshahi,1,gk\n"
    "H2O is?,Salt,Water,Acid,Gas,2,science\n"
    "5 x 3 = ?,15,10,8,53,1,math\n"
)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_db():
        yield db
    app.dependency_overrides[get_db] = override_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(uid, role):
    return {"Authorization": f"Bearer {create_token(uid, [role])}"}


def add_student(db, roll="01712345678", name="রহিম", password="secret", batches=None):
    u = User(name=name, roll=roll, password=password, enrolled_batches=list(batches or []))
    db.add(u); db.commit(); db.refresh(u)
    return u


def add_admin(db, username="admin", password="adminpass", role=ADMIN):
    a = Admin(username=username, password=password, role=role)
    db.add(a); db.commit(); db.refresh(a)
    return a


def add_batch(db, name="HSC 2025", is_public=False):
    b = Batch(name=name, is_public=is_public)
    db.add(b); db.commit(); db.refresh(b)
    return b


def add_question_file(db, content=QUESTIONS_CSV):
    return store_question_file(db, parse_questions_csv(content), "Demo set", "demo.csv")


def add_exam(db, **kw):
    values = {"name": "Model Test 1", "marks_per_question": 1.0, "negative_marks_per_wrong": 0.25}
    values.update(kw)
    e = Exam(**values)
    db.add(e); db.commit(); db.refresh(e)
    return e


def add_submission(db, exam, student, score=None, correct=0, wrong=0, unattempted=0, submitted_at=None, started_at=None):
    s = StudentExam(exam_id=exam.id, student_id=student.uid, score=score, correct_answers=correct,
                    wrong_answers=wrong, unattempted=unattempted, started_at=started_at, submitted_at=submitted_at)
    db.add(s); db.commit(); db.refresh(s)
    return s


def now_utc():
    return datetime.now(timezone.utc)


@pytest.fixture
def student(db):
    return add_student(db)


@pytest.fixture
def student_headers(student):
    return auth(student.uid, STUDENT)


@pytest.fixture
def admin_headers(db):
    return auth(add_admin(db).uid, ADMIN)


@pytest.fixture
def moderator_headers(db):
    return auth(add_admin(db, username="mod", role=MODERATOR).uid, MODERATOR)


@pytest.fixture
def live_exam(db):
    qf = add_question_file(db)
    return add_exam(db, file_id=qf.id, start_at=now_utc() - timedelta(hours=1), end_at=now_utc() + timedelta(hours=1))
