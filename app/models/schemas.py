from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Request/response bodies of the confirmation endpoints. Field names on the
# wire are camelCase to match the web client.


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GenerateConfirmationIn(_Wire):
    # Optional so that missing fields surface as 400 from the workflow, not 422
    doctor_id: Optional[str] = Field(None, alias="doctorId")
    patient_email: Optional[str] = Field(None, alias="patientEmail")


class EmailTemplate(BaseModel):
    subject: str
    body: str


class GenerateConfirmationOut(_Wire):
    success: bool = True
    confirmation_link: str = Field(..., alias="confirmationLink")
    email_template: EmailTemplate = Field(..., alias="emailTemplate")


class ConfirmTokenIn(_Wire):
    token: Optional[str] = None


class ConfirmTokenOut(_Wire):
    success: bool = True
    doctor_id: str = Field(..., alias="doctorId")
    patient_id: str = Field(..., alias="patientId")
    confirmed_at: datetime = Field(..., alias="confirmedAt")
