from datetime import date

from pydantic import BaseModel, Field, model_validator


class BatchCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def validate_dates(self) -> "BatchCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class BatchStatusUpdate(BaseModel):
    is_active: bool
    start_date: date | None = None
    end_date: date | None = None


class BatchOut(BaseModel):
    id: str
    name: str
    start_date: date | None
    end_date: date | None
    is_active: bool

    model_config = {"from_attributes": True}


class ClassCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    batch_id: str | None = None
    capacity: int = Field(default=30, ge=1)


class ClassOut(BaseModel):
    id: str
    name: str
    batch_id: str | None
    capacity: int
    is_active: bool

    model_config = {"from_attributes": True}


class CapacityUpdate(BaseModel):
    capacity: int = Field(ge=1)


class ClassCapacityOut(BaseModel):
    class_id: str
    capacity: int
    current_enrollment: int


class TeacherLink(BaseModel):
    teacher_id: str = Field(min_length=1, max_length=36)
    subject: str | None = Field(default=None, max_length=100)


class TeacherLinkOut(BaseModel):
    id: str
    class_id: str
    teacher_id: str

    model_config = {"from_attributes": True}


class EnrollmentRequest(BaseModel):
    student_id: str = Field(min_length=1, max_length=36)
