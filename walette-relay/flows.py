import asyncio
from typing import Dict, Optional

import httpx

from config import Settings
from errors import FlowAlreadyOpen, InitiationError
from logs import get_logger
from models import FlowKind, FlowState
from storage import FlowStore
from unicore import UniCoreClient

logger = get_logger(__name__)

FLOW_ORDER = (
    FlowKind.CREDENTIAL_OFFER,
    FlowKind.SELF_ISSUED_IDENTITY_REQUEST,
    FlowKind.PRESENTATION_REQUEST,
)

# Label printed in front of each transport string.
TRANSPORT_LABELS = {
    FlowKind.CREDENTIAL_OFFER: "form_url_encoded_credential_offer",
    FlowKind.SELF_ISSUED_IDENTITY_REQUEST: "form_url_encoded_authorization_request",
    FlowKind.PRESENTATION_REQUEST: "form_url_encoded_authorization_request_with_presentation_definition",
}


class FlowInitiator:
    """Starts the offer and authorization request flows on the delegated service."""

    def __init__(self, unicore: UniCoreClient, store: FlowStore, settings: Settings):
        self.unicore = unicore
        self.store = store
        self.presentation_definition_id = settings.PRESENTATION_DEFINITION_ID

    async def _request(self, kind: FlowKind, correlation_id: str) -> httpx.Response:
        if kind == FlowKind.CREDENTIAL_OFFER:
            return await self.unicore.create_offer(correlation_id)
        if kind == FlowKind.SELF_ISSUED_IDENTITY_REQUEST:
            # The correlation id doubles as the nonce; a real deployment should
            # use a fresh nonce per request.
            return await self.unicore.create_authorization_request(correlation_id)
        if kind == FlowKind.PRESENTATION_REQUEST:
            return await self.unicore.create_authorization_request(
                correlation_id, self.presentation_definition_id
            )
        raise ValueError(f"Unknown flow kind {kind}")

    async def initiate(self, kind: FlowKind, correlation_id: str) -> str:
        """Start one flow and return its form-url-encoded transport string."""
        try:
            record = self.store.open(kind, correlation_id)
        except FlowAlreadyOpen as e:
            raise InitiationError(kind, "flow is already open") from e

        try:
            response = await self._request(kind, correlation_id)
            transport_string = response.content.decode("utf-8")
            if not transport_string:
                raise InitiationError(kind, "empty response body")
        except httpx.HTTPStatusError as e:
            error = InitiationError(kind, f"service returned {e.response.status_code}")
            record.transition(FlowState.FAILED, error=error.reason)
            raise error from e
        except httpx.HTTPError as e:
            error = InitiationError(kind, str(e) or type(e).__name__)
            record.transition(FlowState.FAILED, error=error.reason)
            raise error from e
        except UnicodeDecodeError as e:
            error = InitiationError(kind, "response body is not valid UTF-8")
            record.transition(FlowState.FAILED, error=error.reason)
            raise error from e
        except InitiationError as e:
            record.transition(FlowState.FAILED, error=e.reason)
            raise

        record.transition(FlowState.AWAITING_COMPLETION, transport_string=transport_string)
        logger.info("flow_initiated", kind=kind.value, correlation_id=correlation_id)
        return transport_string

    async def _initiate_logged(self, kind: FlowKind, correlation_id: str) -> Optional[str]:
        try:
            return await self.initiate(kind, correlation_id)
        except InitiationError as e:
            logger.error(
                "flow_initiation_failed",
                kind=kind.value,
                correlation_id=correlation_id,
                reason=e.reason,
            )
            return None

    async def initiate_all(self, correlation_id: str) -> Dict[FlowKind, Optional[str]]:
        """Start every flow concurrently; failed flows map to None."""
        results = await asyncio.gather(
            *(self._initiate_logged(kind, correlation_id) for kind in FLOW_ORDER)
        )
        return dict(zip(FLOW_ORDER, results))


def print_transport_strings(results: Dict[FlowKind, Optional[str]]):
    for kind, transport_string in results.items():
        if transport_string is not None:
            print(f"{TRANSPORT_LABELS[kind]}: {transport_string}")
