import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import ConnectionFailure
from app.core.limiter import limiter
from app.modules.auth.deps import get_current_user
from app.modules.projects import models, schemas
from app.modules.projects.deps import get_connection_manager, get_project, require_permission
from app.modules.projects.roles import ProjectRole
from app.modules.users.models import User
from app.system.connection_manager import ConnectionManager
from app.system.db_types import TargetDescriptor
from app.system.record_service import RecordService

logger = logging.getLogger(__name__)

# Setup Router
router = APIRouter(
    prefix="/projects",
    tags=["Projects Management"]
)

CONNECTION_FIELDS = ("db_driver", "db_host", "db_port", "db_database", "db_username", "db_password")


def refresh_connection_state(project: models.Project, manager: ConnectionManager):
    """Test koneksi project lalu simpan hasilnya di is_connected."""
    if not project.has_database():
        project.is_connected = False
        return None

    result = manager.test_connection(project.to_target())
    project.is_connected = result.connected
    return result


def member_response(member: models.ProjectMember):
    return schemas.MemberResponse(
        id=member.id,
        user_id=member.user_id,
        username=member.user.username,
        email=member.user.email,
        role=ProjectRole(member.role),
    )


# 1. Get All Projects (milik sendiri + yang jadi member)
@router.get("/", response_model=List[schemas.ProjectResponse])
def read_projects(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    member_ids = select(models.ProjectMember.project_id).where(models.ProjectMember.user_id == current_user.id)
    return db.query(models.Project).filter(
        (models.Project.user_id == current_user.id) | (models.Project.id.in_(member_ids))
    ).order_by(models.Project.id).all()


# 2. Create Project
@router.post("/", response_model=schemas.ProjectResponse)
def create_project(payload: schemas.ProjectCreate, db: Session = Depends(get_db),
                   current_user: User = Depends(get_current_user),
                   manager: ConnectionManager = Depends(get_connection_manager)):
    project = models.Project(**payload.model_dump(), user_id=current_user.id, pinned_tables=[])

    # Test koneksi kalau detail database diisi
    refresh_connection_state(project, manager)

    db.add(project)
    db.commit()
    db.refresh(project)
    logger.info("[PROJECT] Created project #%s (%s)", project.id, project.name)
    return project


# 3. Test koneksi sebelum disimpan
@router.post("/test-connection")
@limiter.limit("10/minute")
def test_connection(request: Request, payload: schemas.ConnectionTestRequest,
                    current_user: User = Depends(get_current_user),
                    manager: ConnectionManager = Depends(get_connection_manager)):
    target = TargetDescriptor(
        driver=payload.db_driver,
        host=payload.db_host,
        port=payload.db_port,
        database=payload.db_database,
        username=payload.db_username,
        secret=payload.db_password or "",
    )

    result = manager.test_connection(target)
    tables = []
    if result.connected:
        try:
            tables = RecordService(manager).list_tables(target)
        except ConnectionFailure as e:
            return {"connected": False, "error": e.category, "tables": []}

    return {**result.to_dict(), "tables": tables}


# 4. Get Single Project
@router.get("/{project_id}", response_model=schemas.ProjectResponse)
def read_project(project: models.Project = Depends(get_project)):
    return project


# 5. Update Project (Owner / Admin)
@router.put("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(payload: schemas.ProjectUpdate, db: Session = Depends(get_db),
                   project: models.Project = Depends(require_permission("manage_settings")),
                   manager: ConnectionManager = Depends(get_connection_manager)):
    changes = payload.model_dump(exclude_unset=True)
    old_target = project.to_target()

    for field, value in changes.items():
        setattr(project, field, value)

    if any(field in changes for field in CONNECTION_FIELDS):
        # Buang registrasi lama (kalau pooling aktif), lalu test ulang
        manager.disconnect(old_target)
        refresh_connection_state(project, manager)

    db.commit()
    db.refresh(project)
    return project


# 6. Delete Project (Owner only)
@router.delete("/{project_id}")
def delete_project(db: Session = Depends(get_db),
                   project: models.Project = Depends(require_permission("delete_project")),
                   manager: ConnectionManager = Depends(get_connection_manager)):
    manager.disconnect(project.to_target())
    db.delete(project)
    db.commit()
    return {"message": "Project deleted"}


# --- TEAM MEMBERS ---

@router.get("/{project_id}/members", response_model=List[schemas.MemberResponse])
def list_members(project: models.Project = Depends(get_project)):
    return [member_response(member) for member in project.members]


@router.post("/{project_id}/members", response_model=schemas.MemberResponse)
def add_member(payload: schemas.MemberCreate, db: Session = Depends(get_db),
               project: models.Project = Depends(require_permission("manage_team"))):
    if payload.role not in ProjectRole.assignable():
        raise HTTPException(status_code=400, detail="Role cannot be assigned")

    user = db.query(User).filter(User.username == payload.username).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if project.has_member(user):
        raise HTTPException(status_code=400, detail="User is already a member")

    member = models.ProjectMember(project_id=project.id, user_id=user.id, role=payload.role.value)
    db.add(member)
    db.commit()
    db.refresh(member)
    return member_response(member)


def get_member(project: models.Project, member_id: int) -> models.ProjectMember:
    for member in project.members:
        if member.id == member_id:
            return member
    raise HTTPException(status_code=404, detail="Member not found")


@router.patch("/{project_id}/members/{member_id}", response_model=schemas.MemberResponse)
def update_member_role(member_id: int, payload: schemas.MemberUpdate, db: Session = Depends(get_db),
                       project: models.Project = Depends(require_permission("manage_team"))):
    if payload.role not in ProjectRole.assignable():
        raise HTTPException(status_code=400, detail="Role cannot be assigned")

    member = get_member(project, member_id)
    member.role = payload.role.value
    db.commit()
    db.refresh(member)
    return member_response(member)


@router.delete("/{project_id}/members/{member_id}")
def remove_member(member_id: int, db: Session = Depends(get_db),
                  project: models.Project = Depends(require_permission("manage_team"))):
    member = get_member(project, member_id)
    db.delete(member)
    db.commit()
    return {"message": "Member removed"}
