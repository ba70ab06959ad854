"""Dispute schemas."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from orderflow.models.dispute import DisputeOutcome, DisputeParty, DisputeReason, DisputeStatus


class DisputeCreate(BaseModel):
    description: str = Field(max_length=5000)
    reason: DisputeReason = DisputeReason.OTHER
    evidence_urls: list[str] = Field(default_factory=list, max_length=20)


class QcNotesPayload(BaseModel):
    notes: str | None = Field(default=None, max_length=5000)
    qc_action: str | None = Field(default=None, max_length=64)


class SiteVisitRequirement(BaseModel):
    reason: str | None = Field(default=None, max_length=2000)


class SiteVisitSchedule(BaseModel):
    scheduled_at: datetime
    inspector: str = Field(min_length=1, max_length=100)


class SiteVisitCompletion(BaseModel):
    notes: str | None = Field(default=None, max_length=5000)


class EvidenceCreate(BaseModel):
    url: str = Field(min_length=1, max_length=1024)
    description: str | None = Field(default=None, max_length=2000)


class DisputeResolution(BaseModel):
    outcome: DisputeOutcome
    resolution: str = Field(min_length=1, max_length=5000)
    notes: str | None = Field(default=None, max_length=5000)
    qc_action: str | None = Field(default=None, max_length=64)


class DisputeForceResolution(DisputeResolution):
    justification: str = Field(min_length=1, max_length=2000)


class EvidenceRead(BaseModel):
    id: int
    url: str
    description: str | None = None
    submitted_by: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DisputeRead(BaseModel):
    id: int
    order_id: int
    reason: DisputeReason
    description: str
    opened_by: DisputeParty
    opened_by_actor: str
    opened_at: datetime
    status: DisputeStatus
    qc_notes: str | None = None
    qc_action: str | None = None
    outcome: DisputeOutcome | None = None
    resolution: str | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    override_reason: str | None = None
    site_visit_required: bool
    site_visit_forced: bool
    site_visit_completed: bool
    site_visit_scheduled_at: datetime | None = None
    site_visit_inspector: str | None = None
    site_visit_completed_at: datetime | None = None
    evidence: list[EvidenceRead] = []

    model_config = ConfigDict(from_attributes=True)
