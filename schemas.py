"""
Database Schemas for the Mobile Sebaa API

Each document model maps to a MongoDB collection:
- User -> "users"
- Shop -> "shops"

Both accept unknown fields and store them unchanged.
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

ADMIN_ROLE = "Admin"


class ShopStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approve"


class User(BaseModel):
    model_config = ConfigDict(extra="allow")

    email: Optional[Any] = Field(None, description="Unique email address")
    role: Optional[Any] = Field(None, description="'Admin' grants the admin flag")


class Shop(BaseModel):
    model_config = ConfigDict(extra="allow")

    mobile: Optional[Any] = Field(None, description="Unique mobile number")
    status: Optional[Any] = Field(None, description="Pending or Approve")
    selectedDistrict: Optional[Any] = Field(None, description="District, used for ordering")
    selectedTown: Optional[Any] = Field(None, description="Town, used for search")


class UserPage(BaseModel):
    users: List[dict]
    countUser: int


class ShopPage(BaseModel):
    shops: List[dict]
    countShop: int


class RoleOut(BaseModel):
    admin: bool
