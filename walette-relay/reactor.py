from typing import Optional

import httpx
from jwcrypto import jwk
from jwcrypto.common import JWException

from config import Settings
from credentials import (
    credential_subject,
    personalize,
    presentation_summary,
    token_nonce,
    unverified_claims,
)
from errors import CorrelationMismatch, FlowClosed, ReactionIOError
from logs import get_logger
from models import (
    CredentialRequestVerified,
    FlowKind,
    FlowRecord,
    FlowState,
    InboundEvent,
    PresentationVerified,
    SelfIssuedIdentityVerified,
)
from storage import FlowStore
from unicore import UniCoreClient

logger = get_logger(__name__)


class FlowReactor:
    """Carries out the side effect of each completion event.

    Flows are looked up in the store by kind and correlation id; a flow that is
    already completed is never acted upon twice.
    """

    def __init__(
        self,
        unicore: UniCoreClient,
        store: FlowStore,
        settings: Settings,
        credential: str,
        signing_key: Optional[jwk.JWK] = None,
    ):
        self.unicore = unicore
        self.store = store
        self.correlation_id = settings.CORRELATION_ID
        self.credential = credential
        self.signing_key = signing_key
        self.signing_key_id = settings.SIGNING_KEY_ID

    async def react(self, event: InboundEvent):
        if isinstance(event, CredentialRequestVerified):
            await self.credential_request_verified(event)
        elif isinstance(event, SelfIssuedIdentityVerified):
            await self.identity_verified(event)
        elif isinstance(event, PresentationVerified):
            await self.presentation_verified(event)
        else:
            raise TypeError(f"Unsupported event {type(event).__name__}")

    async def credential_request_verified(self, event: CredentialRequestVerified):
        kind = FlowKind.CREDENTIAL_OFFER
        record = self.store.get(kind, event.offer_id)
        if record is None:
            raise CorrelationMismatch(kind, self.correlation_id, event.offer_id)

        async with record.lock:
            if record.state == FlowState.COMPLETED:
                logger.info("duplicate_event_skipped", kind=kind.value, correlation_id=event.offer_id)
                return
            if record.state == FlowState.FAILED:
                raise FlowClosed(kind, event.offer_id, record.state.value)

            credential = self.credential_for(event.subject_id)
            try:
                await self.unicore.submit_credential(event.offer_id, credential)
            except httpx.HTTPStatusError as e:
                raise ReactionIOError(
                    kind, event.offer_id, f"service returned {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                raise ReactionIOError(kind, event.offer_id, str(e) or type(e).__name__) from e

            record.transition(FlowState.COMPLETED, result=credential)

        logger.info(
            "credential_submitted",
            correlation_id=event.offer_id,
            subject_id=event.subject_id,
        )

    def credential_for(self, subject_id: Optional[str]) -> str:
        if subject_id is None:
            return self.credential

        if self.signing_key is not None:
            try:
                return personalize(
                    self.credential, subject_id, self.signing_key, key_id=self.signing_key_id
                )
            except (ValueError, JWException) as e:
                logger.warning("credential_personalization_failed", subject_id=subject_id, error=str(e))
                return self.credential

        fixture_subject = credential_subject(self.credential)
        if fixture_subject != subject_id:
            logger.warning(
                "credential_subject_mismatch",
                subject_id=subject_id,
                credential_subject=fixture_subject,
            )
        return self.credential

    async def identity_verified(self, event: SelfIssuedIdentityVerified):
        claims = unverified_claims(event.id_token) or {}
        logger.info("id_token_received", id_token=event.id_token, subject=claims.get("sub"))
        await self._complete(FlowKind.SELF_ISSUED_IDENTITY_REQUEST, event.id_token)

    async def presentation_verified(self, event: PresentationVerified):
        logger.info(
            "vp_token_received",
            vp_token=event.vp_token,
            **presentation_summary(event.vp_token),
        )
        await self._complete(FlowKind.PRESENTATION_REQUEST, event.vp_token)

    async def _complete(self, kind: FlowKind, token: str) -> Optional[FlowRecord]:
        # Authorization responses carry the request nonce, which is the
        # correlation id; opaque tokens fall back to the tracked flow.
        correlation_id = token_nonce(token) or self.correlation_id
        record = self.store.get(kind, correlation_id)
        if record is None:
            logger.warning("verification_without_flow", kind=kind.value, correlation_id=correlation_id)
            return None

        async with record.lock:
            if record.state == FlowState.COMPLETED:
                logger.info("duplicate_event_skipped", kind=kind.value, correlation_id=correlation_id)
                return record
            if record.state == FlowState.FAILED:
                raise FlowClosed(kind, correlation_id, record.state.value)
            record.transition(FlowState.COMPLETED, result=token)
        return record
