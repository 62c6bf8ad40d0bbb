# routes/catalog.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from core.database import get_session
from core.security import get_current_staff
from schemas.catalog_schema import (
    ClassSessionCreate,
    ClassSessionRead,
    PlanOptionCreate,
    PlanOptionRead,
    TrainingClassCreate,
    TrainingClassRead,
)
from services import catalog_service

router = APIRouter(prefix="/catalog", tags=["Catalog"])


# ==================================================================
#  ✅ Classes
# ==================================================================
@router.post(
    "/classes",
    response_model=TrainingClassRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_staff)],
)
def create_class(data: TrainingClassCreate, session: Session = Depends(get_session)):
    return TrainingClassRead.model_validate(catalog_service.create_class(session, data))


@router.get("/classes", response_model=List[TrainingClassRead])
def list_classes(session: Session = Depends(get_session)):
    return [TrainingClassRead.model_validate(c) for c in catalog_service.list_classes(session)]


@router.get("/classes/{class_id}/sessions", response_model=List[ClassSessionRead])
def list_sessions(class_id: int, session: Session = Depends(get_session)):
    return [ClassSessionRead.model_validate(s) for s in catalog_service.list_class_sessions(session, class_id)]


# ==================================================================
#  ✅ Sessions
# ==================================================================
@router.post(
    "/sessions",
    response_model=ClassSessionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_staff)],
)
def create_session(data: ClassSessionCreate, session: Session = Depends(get_session)):
    return ClassSessionRead.model_validate(catalog_service.create_class_session(session, data))


# ==================================================================
#  ✅ Plan options
# ==================================================================
@router.post(
    "/plan-options",
    response_model=PlanOptionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(get_current_staff)],
)
def create_plan_option(data: PlanOptionCreate, session: Session = Depends(get_session)):
    return PlanOptionRead.model_validate(catalog_service.create_plan_option(session, data))


@router.get("/plan-options", response_model=List[PlanOptionRead])
def list_plan_options(session: Session = Depends(get_session)):
    return [PlanOptionRead.model_validate(p) for p in catalog_service.list_plan_options(session)]
