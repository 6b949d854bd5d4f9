from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.modules.auth.deps import get_current_user
from app.modules.projects import models
from app.modules.users.models import User
from app.system.connection_manager import ConnectionManager
from app.system.record_service import RecordService


def get_connection_manager(request: Request) -> ConnectionManager:
    # Registry cuma ada kalau pooling diaktifkan (lihat startup di main.py)
    registry = getattr(request.app.state, "connection_registry", None)
    return ConnectionManager(registry=registry)


def get_record_service(manager: ConnectionManager = Depends(get_connection_manager)) -> RecordService:
    return RecordService(manager)


def get_project(project_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    project = db.query(models.Project).filter(models.Project.id == project_id).first()

    # Bukan member = dianggap tidak ada
    if not project or not project.has_member(current_user):
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def require_permission(permission: str):
    """
    Dependency factory: cek role user di project.
    Contoh: Depends(require_permission("edit_records"))
    """

    def checker(project: models.Project = Depends(get_project), current_user: User = Depends(get_current_user)):
        role = project.get_member_role(current_user)
        allowed = getattr(role, f"can_{permission}")() if role else False
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission for this project"
            )
        return project

    return checker
