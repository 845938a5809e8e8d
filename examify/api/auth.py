import hmac
import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, constr
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import select
from examify.core.auth import create_token, get_current_user, TokenData, STUDENT
from examify.core.config import settings
from examify.core.database import get_db
from examify.models.orm import User, Admin

logger = logging.getLogger(__name__)
router = APIRouter()


class StudentLogin(BaseModel):
    roll: constr(min_length=1)
    password: str


class AdminLogin(BaseModel):
    username: constr(min_length=1)
    password: str


class RegisterIn(BaseModel):
    name: constr(strip_whitespace=True, min_length=1)
    roll: constr(strip_whitespace=True, min_length=1)
    password: str
    confirm_password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    roles: List[str]
    uid: str
    name: str


class MeOut(BaseModel):
    uid: str
    roles: List[str]
    name: Optional[str] = None
    roll: Optional[str] = None
    enrolled_batches: List[str] = []


def login_roll(raw: str) -> str:
    """``PREFIX-ROLL`` logins use the part after the first dash."""
    raw = raw.strip()
    if "-" in raw:
        parts = raw.split("-")
        if len(parts) > 1 and parts[1].strip():
            return parts[1].strip()
    return raw


def _password_ok(stored: str, given: str) -> bool:
    return hmac.compare_digest((stored or "").encode("utf-8"), (given or "").encode("utf-8"))


@router.post("/login", response_model=TokenOut)
def student_login(payload: StudentLogin, db: Session = Depends(get_db)):
    roll = login_roll(payload.roll)
    user = db.scalar(select(User).where(User.roll == roll))
    if not user or not _password_ok(user.password, payload.password):
        logger.warning("failed student login for roll %s", roll)
        raise HTTPException(401, "ব্যবহারকারী খুঁজে পাওয়া যায়নি বা পাসওয়ার্ড ভুল।")
    logger.info("student %s logged in", user.uid)
    return TokenOut(access_token=create_token(user.uid, [STUDENT]), roles=[STUDENT], uid=user.uid, name=user.name)


@router.post("/admin/login", response_model=TokenOut)
def admin_login(payload: AdminLogin, db: Session = Depends(get_db)):
    admin = db.scalar(select(Admin).where(Admin.username == payload.username.strip()))
    if not admin or not _password_ok(admin.password, payload.password):
        logger.warning("failed admin login for %s", payload.username)
        raise HTTPException(401, "ইউজারনেম বা পাসওয়ার্ড ভুল।")
    logger.info("admin %s logged in as %s", admin.uid, admin.role)
    return TokenOut(access_token=create_token(admin.uid, [admin.role]), roles=[admin.role], uid=admin.uid, name=admin.username)


@router.get("/me", response_model=MeOut)
def me(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    if user.is_staff:
        admin = db.get(Admin, user.sub)
        if not admin: raise HTTPException(401, "অ্যাকাউন্ট খুঁজে পাওয়া যায়নি")
        return MeOut(uid=admin.uid, roles=user.roles, name=admin.username)
    student = db.get(User, user.sub)
    if not student: raise HTTPException(401, "অ্যাকাউন্ট খুঁজে পাওয়া যায়নি")
    return MeOut(uid=student.uid, roles=user.roles, name=student.name, roll=student.roll,
                 enrolled_batches=list(student.enrolled_batches or []))


@router.post("/register", response_model=TokenOut, status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_db)):
    if payload.password != payload.confirm_password:
        raise HTTPException(400, "পাসওয়ার্ড মিলছে না।")
    if len(payload.password) < settings.MIN_PASSWORD_LENGTH:
        raise HTTPException(400, f"পাসওয়ার্ড কমপক্ষে {settings.MIN_PASSWORD_LENGTH} অক্ষরের হতে হবে।")
    if db.scalar(select(User).where(User.roll == payload.roll)):
        raise HTTPException(409, "এই রোল দিয়ে ইতিমধ্যে একজন শিক্ষার্থী আছে")
    user = User(name=payload.name, roll=payload.roll, password=payload.password, enrolled_batches=[])
    db.add(user); db.commit(); db.refresh(user)
    logger.info("student %s registered", user.uid)
    return TokenOut(access_token=create_token(user.uid, [STUDENT]), roles=[STUDENT], uid=user.uid, name=user.name)
