from sqlalchemy import Column, ForeignKey, Integer, String, DateTime, Boolean, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
from app.modules.projects.roles import ProjectRole
from app.system.db_types import TargetDescriptor


class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"))

    name = Column(String(255), index=True)
    description = Column(String(500), nullable=True)  # Deskripsi bisa agak panjang

    # --- Koneksi database project (eksternal) ---
    db_driver = Column(String(20), default="mysql")
    db_host = Column(String(255), nullable=True)
    db_port = Column(Integer, default=3306)
    db_database = Column(String(255), nullable=True)
    db_username = Column(String(255), nullable=True)
    db_password = Column(String(255), nullable=True)

    # Override nama tabel buat tab Users / Feedbacks
    users_table = Column(String(255), nullable=True)
    feedbacks_table = Column(String(255), nullable=True)

    pinned_tables = Column(JSON, default=list)
    is_connected = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    owner = relationship("User", back_populates="projects")
    members = relationship("ProjectMember", back_populates="project", cascade="all, delete-orphan")

    def has_database(self) -> bool:
        return bool(self.db_host) and bool(self.db_database)

    def to_target(self) -> TargetDescriptor:
        return TargetDescriptor(
            driver=self.db_driver or "mysql",
            host=self.db_host,
            port=self.db_port or 3306,
            database=self.db_database,
            username=self.db_username,
            secret=self.db_password or "",
            users_table=self.users_table,
            feedbacks_table=self.feedbacks_table,
        )

    def get_member_role(self, user):
        if self.user_id == user.id:
            return ProjectRole.OWNER
        for member in self.members:
            if member.user_id == user.id:
                return ProjectRole(member.role)
        return None

    def has_member(self, user) -> bool:
        return self.get_member_role(user) is not None


class ProjectMember(Base):
    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_member"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"))
    user_id = Column(Integer, ForeignKey("users.id"))

    role = Column(String(20), default=ProjectRole.VIEWER.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    project = relationship("Project", back_populates="members")
    user = relationship("User", back_populates="memberships")
