import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import (
    ConnectionFailure,
    NoDatabaseConfigured,
    RecordWriteError,
    TableNotFound,
    ValidationRejected,
)
from app.modules.projects import models
from app.modules.projects.deps import get_record_service, require_permission
from app.modules.tables import schemas
from app.system.db_types import ASC, DESC, PageRequest, RowPage, jsonable_row, normalize_direction
from app.system.record_service import TABLE_SORT_COLUMNS, RecordService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/projects/{project_id}",
    tags=["Tables"]
)


def connection_error(e: ConnectionFailure):
    # Kategori sudah aman, pesan driver tidak pernah sampai sini
    return HTTPException(status_code=503, detail=e.category)


# 1. LIST TABLES + ROW COUNT
@router.get("/tables")
def list_tables(search: Optional[str] = None, sort: str = "name", direction: str = ASC,
                project: models.Project = Depends(require_permission("view_tables")),
                service: RecordService = Depends(get_record_service)):
    if sort not in TABLE_SORT_COLUMNS:
        sort = "name"
    direction = normalize_direction(direction, ASC)

    tables = []
    connected = False
    error = None

    if project.has_database():
        try:
            tables = service.list_tables_with_counts(project.to_target(), search, sort, direction)
            connected = True
        except ConnectionFailure as e:
            error = e.category

    pinned = project.pinned_tables or []
    return {
        "tables": [{**t.to_dict(), "is_pinned": t.name in pinned} for t in tables],
        "has_database": project.has_database(),
        "connected": connected,
        "error": error,
        "pinned_tables": pinned,
        "filters": {"search": search, "sort": sort, "direction": direction},
    }


# 2. ROWS (search + sort + pagination)
@router.get("/tables/{table_name}")
def show_table(table_name: str, page: int = 1, search: Optional[str] = None, sort: Optional[str] = None,
               direction: str = DESC,
               project: models.Project = Depends(require_permission("view_tables")),
               service: RecordService = Depends(get_record_service)):
    page_request = PageRequest.build(page=page, search=search, sort=sort, direction=direction,
                                     default_direction=DESC, per_page=service.per_page)

    if not project.has_database():
        result = RowPage.empty(table_name, service.per_page)
    else:
        try:
            result = service.list_rows(project.to_target(), table_name, page_request)
        except TableNotFound:
            raise HTTPException(status_code=404, detail="Table not found")
        except ConnectionFailure as e:
            raise connection_error(e)

    return {
        **result.to_dict(),
        "table": table_name,
        "has_database": project.has_database(),
        "is_pinned": table_name in (project.pinned_tables or []),
        "filters": {"search": search, "sort": sort, "direction": page_request.direction},
    }


# 3. SINGLE RECORD
@router.get("/tables/{table_name}/records/{record_id}")
def show_record(table_name: str, record_id: str,
                project: models.Project = Depends(require_permission("view_tables")),
                service: RecordService = Depends(get_record_service)):
    if not project.has_database():
        return {"table": table_name, "record": None, "has_database": False}

    try:
        schema, record = service.find_record(project.to_target(), table_name, record_id)
    except TableNotFound:
        raise HTTPException(status_code=404, detail="Record not found")
    except ConnectionFailure as e:
        raise connection_error(e)

    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")

    return {
        "table": table_name,
        "record": jsonable_row(record),
        "record_id": record_id,
        "columns": schema.columns.to_list(),
        "foreign_keys": schema.foreign_keys,
        "primary_key": schema.primary_key or "id",
        "has_database": True,
    }


# 4. UPDATE RECORD (Owner / Admin / Editor)
@router.put("/tables/{table_name}")
def update_record(table_name: str, payload: schemas.RecordUpdate,
                  project: models.Project = Depends(require_permission("edit_records")),
                  service: RecordService = Depends(get_record_service)):
    if payload.id in ("", None):
        raise HTTPException(status_code=400, detail="Record ID is required")

    try:
        updated = service.update_row(project.to_target(), table_name, None, payload.id, payload.data)
    except NoDatabaseConfigured:
        raise HTTPException(status_code=400, detail="No database configured")
    except TableNotFound:
        raise HTTPException(status_code=404, detail="Table not found")
    except ValidationRejected as e:
        raise HTTPException(status_code=422, detail=e.message)
    except ConnectionFailure as e:
        raise connection_error(e)
    except RecordWriteError as e:
        # Detail driver sudah di-log di service, user cuma dapat pesan generic
        raise HTTPException(status_code=500, detail=e.message)

    if not updated:
        raise HTTPException(status_code=400, detail="No changes made or record not found")

    return {"success": True, "message": "Record updated successfully"}


# 5. PIN / UNPIN
@router.post("/tables/{table_name}/pin")
def pin_table(table_name: str, db: Session = Depends(get_db),
              project: models.Project = Depends(require_permission("view_tables")),
              service: RecordService = Depends(get_record_service)):
    # Validasi dulu biar nama tabel aneh tidak tersimpan
    if project.has_database():
        try:
            exists = service.check_table(project.to_target(), table_name)
        except ConnectionFailure as e:
            raise connection_error(e)
        if not exists:
            raise HTTPException(status_code=404, detail="Table not found")

    pinned = list(project.pinned_tables or [])
    if table_name not in pinned:
        pinned.append(table_name)
        project.pinned_tables = pinned
        db.commit()

    return {"success": True, "pinned_tables": pinned}


@router.post("/tables/{table_name}/unpin")
def unpin_table(table_name: str, db: Session = Depends(get_db),
                project: models.Project = Depends(require_permission("view_tables"))):
    pinned = [name for name in (project.pinned_tables or []) if name != table_name]
    project.pinned_tables = pinned
    db.commit()
    return {"success": True, "pinned_tables": pinned}


# 6. TAB USERS / FEEDBACKS
def role_rows(role: str, page: int, project: models.Project, service: RecordService):
    result = RowPage.empty("", service.per_page)
    if project.has_database():
        try:
            result = service.list_role_rows(project.to_target(), role, page)
        except ConnectionFailure as e:
            raise connection_error(e)
    return result.to_dict()


@router.get("/users")
def project_users(page: int = 1, project: models.Project = Depends(require_permission("view_tables")),
                  service: RecordService = Depends(get_record_service)):
    return {**role_rows("users", page, project, service), "has_database": project.has_database()}


@router.get("/feedbacks")
def project_feedbacks(page: int = 1, project: models.Project = Depends(require_permission("view_tables")),
                      service: RecordService = Depends(get_record_service)):
    return {
        **role_rows("feedbacks", page, project, service),
        "has_database": project.has_database(),
        "has_feedbacks_table": bool(project.feedbacks_table),
    }
