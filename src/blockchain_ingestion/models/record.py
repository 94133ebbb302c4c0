"""
Module: record.py
Description: Source document record model.

The documents table is owned by the host application. The queue only
reads the subset of columns modelled here and only ever moves
chain_status from unset (None) to pending, and from pending to
anchored or failed.

Dependencies: pydantic, datetime, typing
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


CHAIN_PENDING = "pending"
CHAIN_ANCHORED = "anchored"
CHAIN_FAILED = "failed"
CHAIN_STATUSES = (CHAIN_PENDING, CHAIN_ANCHORED, CHAIN_FAILED)


class SourceRecord(BaseModel):
    """
    A host document eligible for anchoring.

    Attributes:
        id: Document identifier in the host store
        patient_uuid: Owning patient reference (nullable)
        file_path: Content locator (file URL)
        file_hash: Content hash computed by the host
        mime_type: MIME type of the stored document
        category: Category name, empty when uncategorized
        created_at: Document creation timestamp
        deleted: Soft-delete flag; deleted documents are never discovered
        chain_status: None (unset), pending, anchored or failed
        blockchain_tx: Transaction identifier written on success
        record_hash: Record hash written on success
    """

    model_config = ConfigDict(validate_assignment=True)

    id: int = Field(..., ge=0, description="Document identifier")
    patient_uuid: Optional[str] = Field(default=None, description="Owning patient UUID")
    file_path: str = Field(default="", description="Content locator")
    file_hash: str = Field(default="", description="Content hash")
    mime_type: str = Field(default="", description="MIME type")
    category: str = Field(default="", description="Category name")
    created_at: datetime = Field(..., description="Document creation timestamp")
    deleted: bool = Field(default=False, description="Soft-delete flag")
    chain_status: Optional[str] = Field(
        default=None,
        pattern=r"^(pending|anchored|failed)$",
        description="Anchoring status; None means never processed"
    )
    blockchain_tx: Optional[str] = Field(default=None, description="Anchoring transaction id")
    record_hash: Optional[str] = Field(default=None, description="Anchoring record hash")

    @field_validator("file_path", "file_hash", "mime_type", "category", mode="before")
    @classmethod
    def null_to_empty(cls, v):
        """Hosts may store these columns as NULL; treat that as empty."""
        return "" if v is None else v

    @property
    def is_unprocessed(self) -> bool:
        return self.chain_status is None and not self.deleted
