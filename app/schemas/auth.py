from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..core.security import Role

class SetClaimsRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    uid: str = Field(..., min_length=1)
    role: Role
    clinic_id: Optional[str] = Field(None, min_length=1)
    secret: str = Field(..., min_length=1)
