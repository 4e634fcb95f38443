from fastapi import APIRouter, HTTPException, Depends
from database import get_db
from models import User, ROLE_ADMIN
from schemas import UserCreate, UserResponse
from auth import hash_password, get_user_by_email
from dependencies import get_current_user
from typing import List
from sqlalchemy.orm import Session
import logging

router = APIRouter(prefix="/api", tags=["users"])
logger = logging.getLogger(__name__)


def _require_admin(current_user: User):
    if current_user.role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Insufficient permissions. Admin access required.")


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(user: UserCreate, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    _require_admin(current_user)

    if get_user_by_email(user.email, db) is not None:
        raise HTTPException(status_code=400, detail="Email is already registered")

    db_user = User(
        user_name=user.user_name,
        password=hash_password(user.password),
        email=user.email,
        role=user.role
    )

    try:
        db.add(db_user)
        db.commit()
        db.refresh(db_user)
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"User creation failed: {str(e)}")

    logger.info(f"User created: ID={db_user.id}, Role={db_user.role}, By={current_user.id}")
    return db_user


@router.get("/users", response_model=List[UserResponse])
def get_users(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    _require_admin(current_user)
    return db.query(User).order_by(User.id.asc()).all()


@router.get("/users/me", response_model=UserResponse)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    return current_user
