"""Thin client for the delegated issuance/verification service API."""

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from config import Settings
from logs import get_logger

logger = get_logger(__name__)

OFFERS_PATH = "/v1/offers"
AUTHORIZATION_REQUESTS_PATH = "/v1/authorization_requests"
CREDENTIALS_PATH = "/v1/credentials"


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def _log_retry(retry_state):
    exc = retry_state.outcome.exception()
    logger.warning(
        "service_call_retry",
        attempt=retry_state.attempt_number,
        error=str(exc) or type(exc).__name__,
    )


class UniCoreClient:
    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self.client = client
        self.attempts = max(1, settings.RETRY_ATTEMPTS)
        self.base_delay = settings.RETRY_BASE_DELAY
        self.max_delay = settings.RETRY_MAX_DELAY

    async def post(self, path: str, body: dict) -> httpx.Response:
        """POST `body` as JSON; transport errors and 5xx responses are retried
        with backoff, anything else is raised on the first attempt."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.base_delay, max=self.max_delay)
            + wait_random(0, self.base_delay),
            retry=retry_if_exception(is_transient),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                response = await self.client.post(path, json=body)
                response.raise_for_status()
        return response

    async def create_offer(self, offer_id: str) -> httpx.Response:
        return await self.post(OFFERS_PATH, {"offerId": offer_id})

    async def create_authorization_request(
        self, nonce: str, presentation_definition_id: str = None
    ) -> httpx.Response:
        body = {"nonce": nonce}
        if presentation_definition_id:
            body["presentation_definition_id"] = presentation_definition_id
        return await self.post(AUTHORIZATION_REQUESTS_PATH, body)

    async def submit_credential(self, offer_id: str, credential: str) -> httpx.Response:
        return await self.post(
            CREDENTIALS_PATH,
            {"offerId": offer_id, "credential": credential, "isSigned": True},
        )
