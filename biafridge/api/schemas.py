"""
Pydantic Schemas for API Request/Response Models
Type-safe data validation and serialization.
"""

from datetime import date, datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, EmailStr, ConfigDict


# ============================================================================
# Authentication Schemas
# ============================================================================

class CheckEmailResponse(BaseModel):
    """How an email is registered."""
    exists: bool
    has_google_account: bool
    is_email_verified: Optional[bool] = None


class SignupRequest(BaseModel):
    """Email/password sign-up request."""
    email: EmailStr
    password: str = Field(..., max_length=100)
    name: str = Field(..., max_length=100)


class SignupResponse(BaseModel):
    """Sign-up result. ``verification_link`` is set when the email was not sent."""
    message: str
    user_id: str
    fridge_id: str
    email_sent: bool
    verification_link: Optional[str] = None


class LoginRequest(BaseModel):
    """Email/password login request."""
    email: EmailStr
    password: str


class GoogleAuthRequest(BaseModel):
    """ID token from the Google or Firebase client SDK. The name is optional."""
    id_token: str = Field(..., min_length=1)
    name: Optional[str] = Field(None, max_length=100)


class UserResponse(BaseModel):
    """Current user profile."""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    fridge_id: Optional[str] = None
    email_verified: Optional[bool] = None


class TokenResponse(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserResponse


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str = Field(..., max_length=100)


class PasswordResetResponse(BaseModel):
    message: str
    email_sent: bool = False
    reset_link: Optional[str] = None


# ============================================================================
# Fridge Schemas
# ============================================================================

class EnsureFridgeRequest(BaseModel):
    """Display name refreshed on the caller's profile."""
    name: Optional[str] = Field(None, max_length=100)


class EnsureFridgeResponse(BaseModel):
    fridge_id: str
    members: List[str]


class FridgeResponse(BaseModel):
    """Fridge as seen by one member."""
    fridge_id: str
    name: str
    members: List[str]
    is_personal: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FridgeRenameRequest(BaseModel):
    name: str = Field(..., max_length=100)


class FridgeRenameResponse(BaseModel):
    fridge_id: str
    name: str


class LeaveFridgeResponse(BaseModel):
    message: str
    fridge_deleted: bool


# ============================================================================
# Invite Schemas
# ============================================================================

class InviteCreate(BaseModel):
    """Create invite request. The shared fridge is created on acceptance."""
    invitee_email: EmailStr
    fridge_name: Optional[str] = Field(None, max_length=100)


class InviteCreateResponse(BaseModel):
    """
    Invite creation outcome

    ``has_account`` is False (and nothing is persisted) when a fridge invite
    names an email without an account. ``link`` is set when the email was
    not delivered.
    """
    has_account: bool
    invite_id: Optional[str] = None
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    email_sent: bool = False
    link: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class InviteAcceptRequest(BaseModel):
    token: str
    name: Optional[str] = Field(None, max_length=100)


class InviteAcceptResponse(BaseModel):
    fridge_id: str
    already_accepted: bool = False

    model_config = ConfigDict(from_attributes=True)


class InvitePreviewResponse(BaseModel):
    token: str
    invite_type: str
    fridge_name: Optional[str] = None
    fridge_id: Optional[str] = None
    inviter_name: Optional[str] = None
    invitee_email: str
    status: str
    expires_at: datetime


class CheckUserResponse(BaseModel):
    user_id: str
    has_account: bool


# ============================================================================
# Fridge Item Schemas
# ============================================================================

class FridgeItemCreate(BaseModel):
    """Add an item to a fridge the caller belongs to."""
    fridge_id: str
    name: str = Field(..., max_length=200)
    expiry_date: date
    category_id: Optional[str] = None
    is_opened: bool = False
    opened_date: Optional[date] = None


class FridgeItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    expiry_date: Optional[date] = None
    category_id: Optional[str] = None
    is_opened: Optional[bool] = None
    opened_date: Optional[date] = None


class FridgeItemResponse(BaseModel):
    id: str
    name: str
    expiry_date: date
    is_opened: bool
    opened_date: Optional[date] = None
    fridge_id: str
    user_id: str
    category_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClearItemsResponse(BaseModel):
    message: str
    deleted_count: int


# ============================================================================
# Category Schemas
# ============================================================================

class CategoryCreate(BaseModel):
    fridge_id: str
    name: str = Field(..., max_length=100)
    color: Optional[str] = Field(None, max_length=16)


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    color: Optional[str] = Field(None, max_length=16)


class CategoryResponse(BaseModel):
    id: str
    name: str
    fridge_id: str
    color: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Notification Schemas
# ============================================================================

class NotificationResponse(BaseModel):
    """Stored notification, or a synthesized entry for a pending invite."""
    id: str
    user_id: str
    type: str
    title: str
    message: str
    read: bool
    meta: Dict[str, Any] = {}
    created_at: datetime
    synthetic: bool = False


class UnreadCountResponse(BaseModel):
    count: int


class ExpiringCheckResponse(BaseModel):
    notifications_created: int
    items_checked: int


# ============================================================================
# Generic Schemas
# ============================================================================

class MessageResponse(BaseModel):
    """Generic message response."""
    message: str
    success: bool = True


class CountResponse(BaseModel):
    """Bulk operation result."""
    message: str
    count: int
