from typing import Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class PatientCreate(_Body):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=2)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5)
    # Only honoured for platform_admin; clinic roles take it from their claims
    clinic_id: Optional[str] = Field(None, min_length=1)

class PatientUpdate(_Body):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=2)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, min_length=5)
    assigned_nutri_uid: Optional[str] = Field(None, min_length=1)

class PatientLink(_Body):
    model_config = ConfigDict(extra="forbid")

    linked_uid: Optional[str] = Field(..., min_length=1)

class PatientMoveClinic(_Body):
    model_config = ConfigDict(extra="forbid")

    clinic_id: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, min_length=3)
