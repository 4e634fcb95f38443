from pydantic import BaseModel, field_validator, ConfigDict
from typing import List, Optional
from datetime import datetime
import re

from models import ROLES, ROLE_USER

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def _normalize_email(v):
    v = v.strip().lower()
    if not re.match(EMAIL_PATTERN, v):
        raise ValueError('Invalid email format')
    return v


def _validate_new_password(v):
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters long')
    return v


class UserCreate(BaseModel):
    user_name: str
    email: str
    password: str
    role: str = ROLE_USER

    @field_validator('user_name')
    @classmethod
    def validate_user_name(cls, v):
        if len(v.strip()) == 0:
            raise ValueError('Username cannot be empty')
        return v.strip()

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _validate_new_password(v)

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v not in ROLES:
            raise ValueError(f"Role must be one of {', '.join(ROLES)}")
        return v


class SetupRequest(BaseModel):
    user_name: str
    email: str
    password: str

    @field_validator('user_name')
    @classmethod
    def validate_user_name(cls, v):
        if len(v.strip()) == 0:
            raise ValueError('Username cannot be empty')
        return v.strip()

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _validate_new_password(v)


class UserResponse(BaseModel):
    id: int
    user_name: str
    email: str
    role: str
    create_date: datetime

    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    user: UserResponse


class LogoutResponse(BaseModel):
    message: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _validate_new_password(v)


class MessageResponse(BaseModel):
    message: str


class GalleryCreateRequest(BaseModel):
    name: str
    parent_id: Optional[int] = None
    password: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if len(v.strip()) == 0:
            raise ValueError('Gallery name cannot be empty')
        if len(v) > 255:
            raise ValueError('Gallery name must be 255 characters or less')
        return v.strip()


class GalleryUpdateRequest(BaseModel):
    name: Optional[str] = None
    parent_id: Optional[int] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is not None and len(v.strip()) == 0:
            raise ValueError('Gallery name cannot be empty')
        return v.strip() if v is not None else v


class GalleryPasswordRequest(BaseModel):
    password: Optional[str] = None


class GalleryResponse(BaseModel):
    id: int
    name: str
    owner_id: int
    parent_id: Optional[int]
    has_password: bool
    create_date: datetime
    photo_count: Optional[int] = None


class AssignmentRequest(BaseModel):
    user_id: int


class AssignmentResponse(BaseModel):
    id: int
    gallery_id: int
    user_id: int
    user_name: Optional[str] = None
    email: Optional[str] = None


class RatingRequest(BaseModel):
    rating: int
    user_name: Optional[str] = None


class RatingResponse(BaseModel):
    id: int
    rating: int


class BatchRatingRequest(BaseModel):
    photo_ids: List[int]
    rating: int
    user_name: Optional[str] = None


class BatchRatingResponse(BaseModel):
    success: bool
    message: str
    photos: List[RatingResponse]


class BatchDeleteRequest(BaseModel):
    photo_ids: List[int]


class BatchDeleteError(BaseModel):
    photo_id: int
    error: str


class BatchDeleteResponse(BaseModel):
    deleted: List[int]
    errors: List[BatchDeleteError]
    success: int
    failed: int


class DownloadRequest(BaseModel):
    photo_ids: List[int]
    user_name: Optional[str] = None


class LikeRequest(BaseModel):
    is_liked: bool
    user_name: Optional[str] = None


class LikeResponse(BaseModel):
    is_liked: bool
    like_count: int
    dislike_count: int


class CommentCreateRequest(BaseModel):
    commenter_name: str
    text: str

    @field_validator('commenter_name')
    @classmethod
    def validate_commenter_name(cls, v):
        if len(v.strip()) == 0:
            raise ValueError('Name cannot be empty')
        if len(v) > 100:
            raise ValueError('Name must be 100 characters or less')
        return v.strip()

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        if len(v.strip()) == 0:
            raise ValueError('Comment cannot be empty')
        if len(v) > 1000:
            raise ValueError('Comment must be 1000 characters or less')
        return v.strip()


class CommentResponse(BaseModel):
    id: int
    photo_id: int
    commenter_name: str
    text: str
    create_date: datetime

    model_config = ConfigDict(from_attributes=True)


class CommentCreateResponse(BaseModel):
    success: bool
    comment_id: int
    author: str
    text: str
    timestamp: Optional[str] = None


class NotificationResponse(BaseModel):
    id: int
    gallery_id: Optional[int]
    photo_id: Optional[int]
    type: str
    message: str
    actor_name: Optional[str]
    is_read: bool
    create_date: datetime

    model_config = ConfigDict(from_attributes=True)


class PublicGalleryRequest(BaseModel):
    password: Optional[str] = None


class BrandingRequest(BaseModel):
    company_name: str

    @field_validator('company_name')
    @classmethod
    def validate_company_name(cls, v):
        if len(v.strip()) == 0:
            raise ValueError('Company name cannot be empty')
        if len(v.strip()) > 255:
            raise ValueError('Company name must be 255 characters or less')
        return v.strip()


class BrandingResponse(BaseModel):
    company_name: str
