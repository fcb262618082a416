from __future__ import annotations

from datetime import datetime
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
_USERNAME_PATTERN = r"^[a-zA-Z0-9_]+$"
_PHONE_PATTERN = r"^05\d{8}$"


def _check_password_strength(value: str) -> str:
    # Require mixed case and a digit on every newly chosen password.
    if not re.search(r"[A-Z]", value):
        raise ValueError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        raise ValueError("Password must contain at least one digit")
    return value


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=100)


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(pattern=_EMAIL_PATTERN, max_length=256)


class ResetPasswordRequest(BaseModel):
    email: str = Field(pattern=_EMAIL_PATTERN, max_length=256)
    token: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=100)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6, max_length=100)
    confirm_password: str

    @field_validator("new_password")
    @classmethod
    def validate_password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=_USERNAME_PATTERN)
    email: str = Field(pattern=_EMAIL_PATTERN, max_length=256)
    password: str = Field(min_length=6, max_length=100)
    confirm_password: str
    full_name: str = Field(min_length=2, max_length=100)
    phone_number: str | None = Field(default=None, pattern=_PHONE_PATTERN)

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class ConfirmEmailRequest(BaseModel):
    email: str = Field(pattern=_EMAIL_PATTERN, max_length=256)
    token: str = Field(min_length=1)


class UserInfo(BaseModel):
    id: int
    username: str
    email: str
    full_name: str
    profile_image_url: str | None = None
    tenant_id: int
    roles: list[str]
    permissions: list[str]


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    access_token_expiry: datetime
    refresh_token_expiry: datetime
    user: UserInfo


class MenuNode(BaseModel):
    id: int
    name_ar: str
    name_en: str
    url: str
    icon: str | None = None
    display_order: int
    children: list["MenuNode"] = Field(default_factory=list)


class CreateUserRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=_USERNAME_PATTERN)
    email: str = Field(pattern=_EMAIL_PATTERN, max_length=256)
    password: str = Field(min_length=6, max_length=100)
    full_name: str = Field(min_length=2, max_length=100)
    phone_number: str | None = Field(default=None, pattern=_PHONE_PATTERN)
    is_active: bool = True
    role_ids: list[int] | None = None

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class UpdateUserRequest(BaseModel):
    email: str | None = Field(default=None, pattern=_EMAIL_PATTERN, max_length=256)
    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    phone_number: str | None = Field(default=None, pattern=_PHONE_PATTERN)
    is_active: bool | None = None
    # None leaves roles untouched; a list replaces them wholesale.
    role_ids: list[int] | None = None


class UserItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    username: str
    email: str
    full_name: str
    phone_number: str | None = None
    is_active: bool
    email_confirmed: bool
    last_login_at: datetime | None = None
    roles: list[str] = Field(default_factory=list)


class CreateRoleRequest(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    description: str | None = Field(default=None, max_length=200)
    permission_ids: list[int] | None = None


class UpdateRoleRequest(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=50)
    description: str | None = Field(default=None, max_length=200)
    is_active: bool = True


class PermissionAssignment(BaseModel):
    permission_id: int
    is_granted: bool = True


class PageActionAssignment(BaseModel):
    page_action_id: int
    is_granted: bool = True


class RoleItem(BaseModel):
    id: int
    name: str
    description: str | None = None
    is_system_role: bool
    is_active: bool
    users_count: int = 0
    permissions_count: int = 0
    created_at: datetime | None = None


class PermissionItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    module: str
    action: str
    code: str
    display_name_ar: str | None = None
    display_name_en: str | None = None
    display_order: int
    is_granted: bool = False


class PermissionGroup(BaseModel):
    module: str
    permissions: list[PermissionItem]


class UpdatePermissionRequest(BaseModel):
    display_name_ar: str | None = None
    display_name_en: str | None = None
    display_order: int | None = None


class MatrixAction(BaseModel):
    action_id: int
    code: str
    name_ar: str
    name_en: str
    display_order: int


class MatrixCell(BaseModel):
    action_id: int
    page_action_id: int
    is_granted: bool


class MatrixPage(BaseModel):
    page_id: int
    name_ar: str
    name_en: str
    url: str
    icon: str | None = None
    display_order: int
    cells: list[MatrixCell]


class RolePermissionMatrix(BaseModel):
    role_id: int
    role_name: str
    is_system_role: bool
    actions: list[MatrixAction]
    pages: list[MatrixPage]


class CreatePageRequest(BaseModel):
    name_ar: str = Field(min_length=1, max_length=100)
    name_en: str = Field(min_length=1, max_length=100)
    url: str = Field(min_length=1, max_length=300)
    icon: str | None = Field(default=None, max_length=100)
    parent_id: int | None = None
    display_order: int = 0
    is_in_menu: bool = True


class UpdatePageRequest(CreatePageRequest):
    is_active: bool = True


class ActionItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name_ar: str
    name_en: str
    code: str
    icon: str | None = None
    display_order: int
    is_active: bool


class PageItem(BaseModel):
    id: int
    name_ar: str
    name_en: str
    url: str
    icon: str | None = None
    parent_id: int | None = None
    display_order: int
    is_active: bool
    is_in_menu: bool
    available_actions: list[ActionItem] = Field(default_factory=list)


class PageOption(BaseModel):
    id: int
    name_ar: str
    name_en: str
    parent_id: int | None = None


class CreateActionRequest(BaseModel):
    name_ar: str = Field(min_length=1, max_length=100)
    name_en: str = Field(min_length=1, max_length=100)
    code: str = Field(min_length=1, max_length=50, pattern=r"^[a-z][a-z0-9_]*$")
    icon: str | None = Field(default=None, max_length=100)
    display_order: int = 0


class UpdateActionRequest(CreateActionRequest):
    is_active: bool = True


class AuditLogItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int | None = None
    username: str | None = None
    tenant_id: int | None = None
    entity_name: str
    entity_id: str | None = None
    action: str
    old_values: dict | None = None
    new_values: dict | None = None
    ip_address: str | None = None
    request_id: str | None = None
    created_at: datetime
