from pydantic import BaseModel, Field
from typing import List, Literal, Optional

from app.modules.projects.roles import ProjectRole

Driver = Literal["mysql", "mariadb"]


# --- Project Schemas ---
class ProjectBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=500)


class ProjectCreate(ProjectBase):
    db_driver: Driver = "mysql"
    db_host: Optional[str] = None
    db_port: int = Field(default=3306, ge=1, le=65535)
    db_database: Optional[str] = None
    db_username: Optional[str] = None
    db_password: Optional[str] = None
    users_table: Optional[str] = None
    feedbacks_table: Optional[str] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=500)
    db_driver: Optional[Driver] = None
    db_host: Optional[str] = None
    db_port: Optional[int] = Field(default=None, ge=1, le=65535)
    db_database: Optional[str] = None
    db_username: Optional[str] = None
    db_password: Optional[str] = None
    users_table: Optional[str] = None
    feedbacks_table: Optional[str] = None


# Password tidak pernah ikut di response
class ProjectResponse(ProjectBase):
    id: int
    user_id: int
    db_driver: Optional[str] = None
    db_host: Optional[str] = None
    db_port: Optional[int] = None
    db_database: Optional[str] = None
    db_username: Optional[str] = None
    users_table: Optional[str] = None
    feedbacks_table: Optional[str] = None
    pinned_tables: List[str] = []
    is_connected: bool = False

    class Config:
        from_attributes = True


# Test koneksi sebelum project disimpan
class ConnectionTestRequest(BaseModel):
    db_driver: Driver = "mysql"
    db_host: str
    db_port: int = Field(ge=1, le=65535)
    db_database: str
    db_username: str
    db_password: Optional[str] = None


# --- Member Schemas ---
class MemberCreate(BaseModel):
    username: str
    role: ProjectRole = ProjectRole.VIEWER


class MemberUpdate(BaseModel):
    role: ProjectRole


class MemberResponse(BaseModel):
    id: int
    user_id: int
    username: str
    email: Optional[str] = None
    role: ProjectRole
