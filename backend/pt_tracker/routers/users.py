"""User API routes: minimal identity rows the ingestion core links logs to."""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from pt_tracker.database import get_db
from pt_tracker.models.user import User, UserRole
from pt_tracker.schemas.user import UserCreate, UserOut

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    """Create a patient, therapist or admin."""
    if db.query(User).filter(User.email == payload.email).first():
        raise HTTPException(status_code=409, detail="Email already registered")
    if payload.therapist_id:
        therapist = db.query(User).filter(User.id == payload.therapist_id).first()
        if not therapist or therapist.role != UserRole.therapist:
            raise HTTPException(status_code=400, detail="therapist_id must reference a therapist")
    user = User(**payload.model_dump())
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created %s user %s (%s)", user.role.value, user.id, user.email)
    return user


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Session = Depends(get_db)):
    """Fetch a single user by ID."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
