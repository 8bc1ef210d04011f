from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from jawara.api.deps import get_current_user, get_db, require_roles
from jawara.models.user import User, UserRole
from jawara.schemas.user import ProfileCreate, ProfileOut
from jawara.services.audit import log_activity

router = APIRouter()


@router.get("/profiles/me", response_model=ProfileOut)
def read_my_profile(current_user: User = Depends(get_current_user)) -> ProfileOut:
    return current_user


@router.get("/profiles", response_model=list[ProfileOut])
def list_profiles(
    role: UserRole | None = Query(default=None),
    class_id: str | None = Query(default=None),
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> list[ProfileOut]:
    query = select(User).order_by(User.full_name)
    if role is not None:
        query = query.where(User.role == role)
    if class_id is not None:
        query = query.where(User.class_id == class_id)
    return list(db.execute(query).scalars())


@router.post("/profiles", response_model=ProfileOut, status_code=status.HTTP_201_CREATED)
def create_profile(
    payload: ProfileCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> ProfileOut:
    existing = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
    if existing is not None or (payload.id and db.get(User, payload.id) is not None):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Profile already exists")

    values = payload.model_dump(exclude_none=True)
    profile = User(**values, is_active=True)
    db.add(profile)
    db.flush()
    log_activity(
        db,
        actor=current_user,
        action="profile.create",
        entity_type="profile",
        entity_id=profile.id,
        details={"role": profile.role.value},
    )
    db.commit()
    db.refresh(profile)
    return profile
