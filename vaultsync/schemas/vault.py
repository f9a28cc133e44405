"""
vaultsync/schemas/vault.py

Pydantic models for the document vault endpoints.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class Requirement(BaseModel):
    code: str
    label: str
    description: Optional[str] = None
    multiple: bool = False
    minFiles: int = 1
    maxFiles: int = 1
    crmTag: Optional[str] = None
    isCore: bool = False


class RequirementsResponse(BaseModel):
    requirements: List[Requirement]
    coreCount: int
    dynamicCount: int


class MissingDocument(BaseModel):
    code: str
    label: str
    needed: int
    uploaded: int


class MarkSubmittedRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doc_code: str = Field(..., min_length=1)


class MarkSubmittedResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    warning: Optional[str] = None
    tagAdded: Optional[str] = None


class UploadResponse(BaseModel):
    ok: bool = True
    documentId: str
    storage_path: str
