"""
Pydantic Schemas - Data Validation Models

Defines the Pydantic schemas used throughout the export pipeline:
- Revision feed responses
- Document and translation API responses
- Persisted export cursor (lastexport.json)
- Stack credentials

Usage:
    from drawexport.utils.schemas import RevisionPage

    page = RevisionPage(**response)
    for rev in page.items:
        print(rev.part_number, rev.revision)
"""

from enum import IntEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ElementType(IntEnum):
    """Document element classification reported by the revision feed."""

    PARTSTUDIO = 0
    ASSEMBLY = 1
    DRAWING = 2


class Revision(BaseModel):
    """One released, immutable version of a document element."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = Field(..., description="Revision ID")
    document_id: Optional[str] = Field(default=None, alias="documentId")
    version_id: Optional[str] = Field(default=None, alias="versionId")
    element_id: Optional[str] = Field(default=None, alias="elementId")
    element_type: Optional[int] = Field(default=None, alias="elementType")
    part_number: Optional[str] = Field(default=None, alias="partNumber")
    revision: Optional[str] = Field(default=None, description="Revision label")
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @property
    def is_drawing(self) -> bool:
        return self.element_type == ElementType.DRAWING

    @property
    def output_file_name(self) -> str:
        return f"{self.part_number}_{self.revision}.pdf"


class RevisionPage(BaseModel):
    """A page of the company revision feed."""

    model_config = ConfigDict(extra="ignore")

    items: list[Revision] = Field(default_factory=list)
    next: Optional[str] = Field(default=None, description="URI of the following page")


class DocumentInfo(BaseModel):
    """Parent document lookup result. Only the trash flag matters here."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: Optional[str] = None
    trash: bool = False


class TranslationJob(BaseModel):
    """Translation request / status payload.

    Returned both when a translation is submitted (carrying the href to poll)
    and by each status poll (carrying requestState and, when DONE, the
    external data ids of the produced artifact).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    href: Optional[str] = None
    request_state: str = Field(default="ACTIVE", alias="requestState")
    result_external_data_ids: list[Optional[str]] = Field(
        default_factory=list, alias="resultExternalDataIds"
    )
    failure_reason: Optional[str] = Field(default=None, alias="failureReason")

    @field_validator("result_external_data_ids", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return v or []


class BadRevisionRecord(BaseModel):
    """Identifying fields of a revision that permanently failed to export."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    document_id: Optional[str] = Field(default=None, alias="documentId")
    version_id: Optional[str] = Field(default=None, alias="versionId")
    element_id: Optional[str] = Field(default=None, alias="elementId")
    part_number: Optional[str] = Field(default=None, alias="partNumber")
    revision: Optional[str] = None
    failure: str = Field(..., description="Failure description")


class ExportCursor(BaseModel):
    """Persisted pipeline progress.

    Frozen: every change produces a new cursor via model_copy(update=...).
    Serialized with by_alias=True to match the lastexport.json layout.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    date: str = Field(..., description="ISO-8601 watermark")
    offset: int = Field(default=0, ge=0)
    part_number: Optional[str] = Field(default=None, alias="partNumber")
    revision: Optional[str] = None
    badrevisions: dict[str, BadRevisionRecord] = Field(default_factory=dict)

    @field_validator("offset", mode="before")
    @classmethod
    def offset_default(cls, v):
        return v or 0

    @field_validator("badrevisions", mode="before")
    @classmethod
    def badrevisions_default(cls, v):
        return v or {}

    def is_bad(self, revision_id: str) -> bool:
        return revision_id in self.badrevisions


class Credentials(BaseModel):
    """API key credentials for one stack in credentials.json."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    url: str = Field(..., description="Base URL of the service")
    access_key: str = Field(..., alias="accessKey")
    secret_key: str = Field(..., alias="secretKey")
    company_id: str = Field(..., alias="companyId")

    @field_validator("url", "access_key", "secret_key", "company_id")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must be a non-empty string")
        return v
