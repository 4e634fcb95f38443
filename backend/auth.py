from passlib.context import CryptContext
from jose import jwt
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from datetime import datetime, timedelta
from typing import Optional
from models import User
from config import SECRET_KEY, ALGORITHM, PASSWORD_RESET_EXPIRE_SECONDS
from sqlalchemy.orm import Session

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

reset_serializer = URLSafeTimedSerializer(SECRET_KEY, salt="password-reset")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_user_by_email(email: str, db: Session) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def get_user_by_id(user_id: int, db: Session) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=15)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def authenticate_user(email: str, password: str, db: Session):
    user = get_user_by_email(email, db)
    if not user:
        return False
    if not verify_password(password, user.password):
        return False
    return user


def generate_password_reset_token(user: User) -> str:
    """
    パスワードリセット用トークンを生成する

    現在のパスワードハッシュの末尾を埋め込むため、パスワード変更後は
    同じトークンを再利用できない（ワンタイム）。
    """
    return reset_serializer.dumps({"uid": user.id, "pw": user.password[-12:]})


def verify_password_reset_token(token: str, db: Session) -> Optional[User]:
    """
    パスワードリセット用トークンを検証し、対象ユーザーを返す

    期限切れ・改ざん・使用済みの場合はNoneを返す。
    """
    try:
        data = reset_serializer.loads(token, max_age=PASSWORD_RESET_EXPIRE_SECONDS)
    except (SignatureExpired, BadSignature):
        return None

    user = get_user_by_id(data.get("uid"), db)
    if user is None or user.password[-12:] != data.get("pw"):
        return None
    return user
