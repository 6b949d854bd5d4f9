from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.modules.users import models, schemas
from app.core.security import get_password_hash
from app.modules.auth.deps import get_current_admin, get_current_user  # Kita kunci pakai ini

router = APIRouter(prefix="/users", tags=["User Management"])


@router.get("/me", response_model=schemas.UserResponse)
def read_me(current_user: models.User = Depends(get_current_user)):
    return current_user


# 1. LIST ALL USERS (Admin Only)
@router.get("/", response_model=List[schemas.UserResponse])
def read_users(skip: int = 0, limit: int = 100, db: Session = Depends(get_db),
               current_admin: models.User = Depends(get_current_admin)):
    return db.query(models.User).offset(skip).limit(limit).all()


# 2. CREATE USER (Admin Only)
@router.post("/", response_model=schemas.UserResponse)
def create_user(user: schemas.UserCreate, db: Session = Depends(get_db),
                current_admin: models.User = Depends(get_current_admin)):
    # Cek username / email kembar
    exists = db.query(models.User).filter(
        (models.User.username == user.username) | (models.User.email == user.email)
    ).first()
    if exists:
        raise HTTPException(status_code=400, detail="Username or email already registered")

    new_user = models.User(
        username=user.username,
        hashed_password=get_password_hash(user.password),
        email=user.email,
        role=user.role,
        is_active=True
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)
    return new_user


# 3. UPDATE USER (Admin Only)
@router.put("/{user_id}", response_model=schemas.UserResponse)
def update_user(user_id: int, payload: schemas.UserUpdate, db: Session = Depends(get_db),
                current_admin: models.User = Depends(get_current_admin)):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if payload.password:
        user.hashed_password = get_password_hash(payload.password)
    if payload.role is not None:
        user.role = payload.role
    if payload.is_active is not None:
        user.is_active = payload.is_active

    db.commit()
    db.refresh(user)
    return user


# 4. DELETE USER (Admin Only)
@router.delete("/{user_id}")
def delete_user(user_id: int, db: Session = Depends(get_db), current_admin: models.User = Depends(get_current_admin)):
    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if user.id == current_admin.id:
        raise HTTPException(status_code=400, detail="Cannot delete yourself!")

    # Project milik user harus dihapus / dipindah dulu
    if user.projects:
        raise HTTPException(status_code=400, detail="User still owns projects")

    db.delete(user)
    db.commit()
    return {"message": "User deleted"}
