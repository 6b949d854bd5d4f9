from pydantic import BaseModel, EmailStr
from typing import Literal, Optional


# Schema dasar
class UserBase(BaseModel):
    username: str
    email: EmailStr
    role: Literal["admin", "user"] = "user"


# Schema buat Create User (User input password di sini)
class UserCreate(UserBase):
    password: str


class UserUpdate(BaseModel):
    password: Optional[str] = None
    role: Optional[Literal["admin", "user"]] = None
    is_active: Optional[bool] = None


# Schema buat Response (Password dihilangkan biar aman)
class UserResponse(UserBase):
    id: int
    is_active: bool

    class Config:
        from_attributes = True
