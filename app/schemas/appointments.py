from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

class AppointmentRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    nutri_uid: Optional[str] = Field(None, min_length=1)

class AppointmentSchedule(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    scheduled_for: datetime
    nutri_uid: str = Field(..., min_length=1)
