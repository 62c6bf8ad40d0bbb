# schemas/catalog_schema.py
from typing import Optional, List
from datetime import datetime, date
from pydantic import BaseModel, Field, ConfigDict, model_validator


# ---------------------------
# Training Class
# ---------------------------
class ScheduleSlot(BaseModel):
    day: str = Field(..., max_length=20)
    start: str = Field(..., max_length=5, description="HH:MM")
    end: str = Field(..., max_length=5, description="HH:MM")
    location: str = Field(default="", max_length=120)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class TrainingClassCreate(BaseModel):
    title: str = Field(..., max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)
    capacity: int = Field(..., gt=0)
    schedule: List[ScheduleSlot] = Field(default_factory=list)


class TrainingClassRead(BaseModel):
    id: int
    title: str
    description: Optional[str]
    capacity: int
    schedule: List[ScheduleSlot]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Class Session
# ---------------------------
class ClassSessionCreate(BaseModel):
    class_id: int
    start_time: datetime
    end_time: datetime
    capacity: Optional[int] = Field(default=None, gt=0, description="Defaults to the class capacity")
    location: str = Field(default="", max_length=120)
    coach_notes: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def check_window(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class ClassSessionRead(BaseModel):
    id: int
    class_id: int
    start_time: datetime
    end_time: datetime
    capacity: int
    location: str
    coach_notes: Optional[str]

    model_config = ConfigDict(from_attributes=True)


# ---------------------------
# Plan Option
# ---------------------------
class PlanOptionCreate(BaseModel):
    name: str = Field(..., max_length=80)
    weekly_classes: int = Field(..., gt=0)
    duration_months: int = Field(default=1, gt=0)
    price_monthly: int = Field(default=0, ge=0, description="Minor units")
    price_upfront: int = Field(default=0, ge=0, description="Minor units")


class PlanOptionRead(BaseModel):
    id: int
    name: str
    weekly_classes: int
    duration_months: int
    price_monthly: int
    price_upfront: int

    model_config = ConfigDict(from_attributes=True)
