"""
认证数据验证
用户注册、登录、信息等
"""

import re
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator


USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_\-一-龥]+$')


def validate_password_complexity(password: str) -> None:
    """
    验证密码复杂度

    要求：
    - 至少 8 个字符
    - 同时包含字母和数字
    """
    if len(password) < 8:
        raise ValueError('密码长度至少需要 8 个字符')

    errors = []
    if not any(c.isalpha() for c in password):
        errors.append('至少包含一个字母')
    if not any(c.isdigit() for c in password):
        errors.append('至少包含一个数字')

    if errors:
        raise ValueError('密码复杂度不足：' + '、'.join(errors))


class UserCreate(BaseModel):
    """用户注册"""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8, max_length=50)
    confirm_password: Optional[str] = None
    nickname: Optional[str] = Field(None, max_length=50)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        """用户名只允许字母、数字、下划线、连字符和中文"""
        v = v.strip()
        if not USERNAME_PATTERN.match(v):
            raise ValueError('用户名只能包含字母、数字、下划线、连字符或中文')
        return v

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        """验证密码复杂度"""
        validate_password_complexity(v)
        return v

    @field_validator('confirm_password')
    @classmethod
    def passwords_match(cls, v, info):
        """验证两次密码是否一致"""
        if v is not None and 'password' in info.data and v != info.data['password']:
            raise ValueError('两次输入的密码不一致')
        return v


class UserLogin(BaseModel):
    """用户登录"""
    username: str
    password: str


class UserUpdate(BaseModel):
    """个人资料更新（仅更新提交的字段）"""
    nickname: Optional[str] = Field(None, min_length=1, max_length=50)
    username: Optional[str] = Field(None, min_length=3, max_length=50)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        """用户名规则与注册一致"""
        if v is None:
            return v
        v = v.strip()
        if not USERNAME_PATTERN.match(v):
            raise ValueError('用户名只能包含字母、数字、下划线、连字符或中文')
        return v


class UserInfo(BaseModel):
    """用户信息"""
    id: int
    username: str
    nickname: Optional[str] = None
    is_active: bool
    is_brain_public: bool
    created_at: datetime
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True
