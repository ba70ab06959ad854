"""Schema package exports."""
from .delivery import BuyerDeliveryRead, DeliveryRead, PhotoSubmission, PinSubmission, PinUnlockPayload
from .dispute import (
    DisputeCreate,
    DisputeForceResolution,
    DisputeRead,
    DisputeResolution,
    EvidenceCreate,
    EvidenceRead,
    QcNotesPayload,
    SiteVisitCompletion,
    SiteVisitRequirement,
    SiteVisitSchedule,
)
from .escrow import EscrowEventRead, EscrowRead
from .order import OrderCreate, OrderEventRead, OrderRead, ReasonPayload
