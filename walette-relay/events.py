"""Decode callback payloads into one of the known event shapes.

The delegated service publishes events either wrapped in their variant name,

    {"CredentialRequestVerified": {"offer_id": "...", "subject_id": null}}

or as the bare variant body. Bare bodies are matched against the variants in
DECODE_ORDER and the first one that validates wins, so a body carrying both
`offer_id` and `id_token` decodes as CredentialRequestVerified.
"""

from typing import Any, Optional

from pydantic import ValidationError

from models import (
    CredentialRequestVerified,
    InboundEvent,
    PresentationVerified,
    SelfIssuedIdentityVerified,
)

DECODE_ORDER = (
    CredentialRequestVerified,
    SelfIssuedIdentityVerified,
    PresentationVerified,
)

EVENT_TAGS = {
    "CredentialRequestVerified": CredentialRequestVerified,
    "SIOPv2AuthorizationResponseVerified": SelfIssuedIdentityVerified,
    "OID4VPAuthorizationResponseVerified": PresentationVerified,
}


def _validate(model, body: Any) -> Optional[InboundEvent]:
    try:
        return model.model_validate(body)
    except ValidationError:
        return None


def decode(payload: Any) -> Optional[InboundEvent]:
    """Return the event `payload` describes, or None when it matches no known shape."""
    if not isinstance(payload, dict):
        return None

    if len(payload) == 1:
        tag, body = next(iter(payload.items()))
        model = EVENT_TAGS.get(tag)
        if model is not None:
            return _validate(model, body)

    for model in DECODE_ORDER:
        event = _validate(model, payload)
        if event is not None:
            return event
    return None


def event_name(event: InboundEvent) -> str:
    return type(event).__name__
