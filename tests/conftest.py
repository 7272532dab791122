import json

import httpx
import pytest

from config import Settings
from credentials import load_credential
from flows import FlowInitiator
from reactor import FlowReactor
from storage import FlowStore
from unicore import UniCoreClient

CREDENTIAL_OFFER = "openid-credential-offer://?credential_offer=%7B%22credential_issuer%22%3A%22http%3A%2F%2Funicore.test%2F%22%7D"
AUTHORIZATION_REQUEST = "siopv2://idtoken?client_id=did%3Akey%3Aabc&request_uri=http%3A%2F%2Funicore.test%2Frequest.jwt%2F1"
PRESENTATION_REQUEST = "openid4vp://?client_id=did%3Akey%3Aabc&request_uri=http%3A%2F%2Funicore.test%2Frequest.jwt%2F2"


class StubService:
    """Stands in for the delegated service and records every request it gets."""

    def __init__(self):
        self.requests = []
        self.responses = {}

    def respond(self, path, *responses):
        """Queue responses for `path`; the last one is repeated once reached.
        An exception instance is raised instead of answering."""
        self.responses[path] = list(responses)

    def handler(self, request: httpx.Request):
        self.requests.append(request)
        queued = self.responses.get(request.url.path)
        if queued:
            response = queued.pop(0) if len(queued) > 1 else queued[0]
        else:
            response = self.default_response(request)
        if isinstance(response, Exception):
            raise response
        return response

    def default_response(self, request: httpx.Request):
        if request.url.path == "/v1/offers":
            return httpx.Response(200, text=CREDENTIAL_OFFER)
        if request.url.path == "/v1/authorization_requests":
            body = json.loads(request.content)
            if "presentation_definition_id" in body:
                return httpx.Response(200, text=PRESENTATION_REQUEST)
            return httpx.Response(200, text=AUTHORIZATION_REQUEST)
        if request.url.path == "/v1/credentials":
            return httpx.Response(200)
        return httpx.Response(404)

    def calls(self, path):
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        SERVICE_BASE_URL="http://unicore.test",
        CORRELATION_ID="my-first-offer",
        RETRY_ATTEMPTS=3,
        RETRY_BASE_DELAY=0,
        RETRY_MAX_DELAY=0,
        LOG_JSON=True,
    )


@pytest.fixture
def service():
    return StubService()


@pytest.fixture
async def http_client(service, settings):
    async with httpx.AsyncClient(
        base_url=settings.SERVICE_BASE_URL,
        transport=httpx.MockTransport(service.handler),
    ) as client:
        yield client


@pytest.fixture
def unicore(http_client, settings):
    return UniCoreClient(http_client, settings)


@pytest.fixture
def store():
    return FlowStore()


@pytest.fixture
def credential(settings):
    return load_credential(settings.CREDENTIAL_FIXTURE_PATH)


@pytest.fixture
def initiator(unicore, store, settings):
    return FlowInitiator(unicore, store, settings)


@pytest.fixture
def reactor(unicore, store, settings, credential):
    return FlowReactor(unicore, store, settings, credential=credential)
