from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from jawara.models.user import UserRole


class ProfileBase(BaseModel):
    full_name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    role: UserRole
    class_id: str | None = None
    batch_id: str | None = None

    @field_validator("full_name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Name cannot be empty")
        return trimmed

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class ProfileCreate(ProfileBase):
    # Matches the subject of the identity provider's tokens when given.
    id: str | None = Field(default=None, min_length=1, max_length=36)

    @model_validator(mode="after")
    def drop_class_for_staff(self) -> "ProfileCreate":
        if self.role != UserRole.student:
            self.class_id = None
        return self


class ProfileOut(ProfileBase):
    id: str
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
