import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, StrictStr


class FlowKind(str, Enum):
    CREDENTIAL_OFFER = "credential_offer"  # OID4VCI
    SELF_ISSUED_IDENTITY_REQUEST = "self_issued_identity_request"  # SIOPv2
    PRESENTATION_REQUEST = "presentation_request"  # OID4VP


class FlowState(str, Enum):
    INITIATED = "initiated"
    AWAITING_COMPLETION = "awaiting_completion"
    COMPLETED = "completed"
    FAILED = "failed"


class CredentialRequestVerified(BaseModel):
    model_config = ConfigDict(frozen=True)

    offer_id: StrictStr
    subject_id: Optional[StrictStr] = None  # holder DID, if disclosed


class SelfIssuedIdentityVerified(BaseModel):
    model_config = ConfigDict(frozen=True)

    id_token: StrictStr


class PresentationVerified(BaseModel):
    model_config = ConfigDict(frozen=True)

    vp_token: StrictStr


InboundEvent = Union[CredentialRequestVerified, SelfIssuedIdentityVerified, PresentationVerified]


def _now():
    return datetime.now(timezone.utc)


class FlowRecord(BaseModel):
    kind: FlowKind
    correlation_id: str
    state: FlowState = FlowState.INITIATED
    transport_string: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    def transition(self, state: FlowState, **changes):
        for key, value in changes.items():
            setattr(self, key, value)
        self.state = state
        self.updated_at = _now()


class FlowView(BaseModel):
    kind: FlowKind
    correlation_id: str
    state: FlowState
    transport_string: Optional[str] = None
    has_result: bool = False
    error: Optional[str] = None
    updated_at: datetime
