"""
Pydantic schemas for Authentication.

Field names are camelCase to match the existing frontend contract.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Request model for login."""

    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Request model for token refresh. Presence is checked by the route."""

    refreshToken: Optional[str] = None


class UserInfo(BaseModel):
    """Identity snapshot returned with tokens."""

    id: str
    email: str
    role: str
    permissions: List[str] = []
    username: Optional[str] = None


class LoginResponse(BaseModel):
    """Response model for successful login."""

    message: str = "Login successful"
    token: str
    refreshToken: str
    expiresAt: str
    user: UserInfo
    permissions: List[str] = []


class RefreshResponse(BaseModel):
    """Response model for a successful token refresh."""

    token: str
    refreshToken: str
    expiresAt: str
    user: UserInfo


class LogoutResponse(BaseModel):
    message: str = "Logged out successfully"


class HeartbeatResponse(BaseModel):
    """Response model for /auth/heartbeat."""

    success: bool = True
    sessionActive: bool = True
    expiresAt: str
    lastActivity: str
