"""
Pydantic schemas for the autosave HTTP API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RestoreRequest(BaseModel):
    # All optional so missing ids produce our own 400 rather than a 422.
    model_config = ConfigDict(populate_by_name=True)

    file_id: Optional[str] = Field(default=None, alias="fileId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    form_id: Optional[str] = Field(default=None, alias="formId")
    patient_id: Optional[str] = Field(default=None, alias="patientId")


class SignUrlResponse(BaseModel):
    url: str
