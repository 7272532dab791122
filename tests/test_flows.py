import httpx
import pytest

from errors import InitiationError
from flows import FlowInitiator, print_transport_strings
from models import FlowKind, FlowState
from tests.conftest import AUTHORIZATION_REQUEST, CREDENTIAL_OFFER, PRESENTATION_REQUEST


async def test_credential_offer_returns_body_unchanged(initiator, service, store):
    transport_string = await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")

    assert transport_string == CREDENTIAL_OFFER
    assert service.calls("/v1/offers") == [{"offerId": "my-first-offer"}]
    assert len(service.requests) == 1

    record = store.get(FlowKind.CREDENTIAL_OFFER, "my-first-offer")
    assert record.state == FlowState.AWAITING_COMPLETION
    assert record.transport_string == CREDENTIAL_OFFER


async def test_self_issued_identity_request_body(initiator, service):
    transport_string = await initiator.initiate(
        FlowKind.SELF_ISSUED_IDENTITY_REQUEST, "my-first-offer"
    )

    assert transport_string == AUTHORIZATION_REQUEST
    assert service.calls("/v1/authorization_requests") == [{"nonce": "my-first-offer"}]
    assert len(service.requests) == 1


async def test_presentation_request_body(initiator, service):
    transport_string = await initiator.initiate(FlowKind.PRESENTATION_REQUEST, "my-first-offer")

    assert transport_string == PRESENTATION_REQUEST
    assert service.calls("/v1/authorization_requests") == [
        {
            "nonce": "my-first-offer",
            "presentation_definition_id": "selv_presentation_definition",
        }
    ]
    assert len(service.requests) == 1


async def test_presentation_definition_is_configurable(unicore, store, settings, service):
    settings.PRESENTATION_DEFINITION_ID = "employee_presentation_definition"
    initiator = FlowInitiator(unicore, store, settings)

    await initiator.initiate(FlowKind.PRESENTATION_REQUEST, "offer-2")

    body = service.calls("/v1/authorization_requests")[0]
    assert body["presentation_definition_id"] == "employee_presentation_definition"


async def test_client_error_is_not_retried(initiator, service, store):
    service.respond("/v1/offers", httpx.Response(400, text="bad offer"))

    with pytest.raises(InitiationError) as exc_info:
        await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")

    assert exc_info.value.kind == FlowKind.CREDENTIAL_OFFER
    assert "400" in exc_info.value.reason
    assert len(service.requests) == 1
    record = store.get(FlowKind.CREDENTIAL_OFFER, "my-first-offer")
    assert record.state == FlowState.FAILED


async def test_server_error_is_retried_then_reported(initiator, service, settings, recwarn):
    service.respond("/v1/offers", httpx.Response(503))

    with pytest.raises(InitiationError):
        await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")

    assert len(service.requests) == settings.RETRY_ATTEMPTS
    assert not [w for w in recwarn if w.filename.endswith("unicore.py")]


async def test_transient_failure_recovers(initiator, service):
    service.respond(
        "/v1/offers",
        httpx.ConnectError("connection refused"),
        httpx.Response(200, text=CREDENTIAL_OFFER),
    )

    transport_string = await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")

    assert transport_string == CREDENTIAL_OFFER
    assert len(service.requests) == 2


async def test_network_failure(initiator, service, settings):
    service.respond("/v1/offers", httpx.ConnectError("connection refused"))

    with pytest.raises(InitiationError) as exc_info:
        await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")

    assert "connection refused" in exc_info.value.reason
    assert len(service.requests) == settings.RETRY_ATTEMPTS


async def test_invalid_utf8_body(initiator, service, store):
    service.respond("/v1/offers", httpx.Response(200, content=b"\xff\xfe\xfa"))

    with pytest.raises(InitiationError) as exc_info:
        await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")

    assert "UTF-8" in exc_info.value.reason
    assert store.get(FlowKind.CREDENTIAL_OFFER, "my-first-offer").state == FlowState.FAILED


async def test_empty_body(initiator, service):
    service.respond("/v1/authorization_requests", httpx.Response(200, content=b""))

    with pytest.raises(InitiationError, match="empty response body"):
        await initiator.initiate(FlowKind.SELF_ISSUED_IDENTITY_REQUEST, "my-first-offer")


async def test_open_flow_is_not_initiated_again(initiator, service, store):
    await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")
    store.get(FlowKind.CREDENTIAL_OFFER, "my-first-offer").transition(
        FlowState.COMPLETED, result="credential"
    )

    with pytest.raises(InitiationError, match="flow is already open"):
        await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")

    record = store.get(FlowKind.CREDENTIAL_OFFER, "my-first-offer")
    assert record.state == FlowState.COMPLETED
    assert record.result == "credential"
    assert len(service.requests) == 1


async def test_failed_flow_can_be_initiated_again(initiator, service, store):
    service.respond(
        "/v1/offers", httpx.Response(400), httpx.Response(200, text=CREDENTIAL_OFFER)
    )

    with pytest.raises(InitiationError):
        await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")
    transport_string = await initiator.initiate(FlowKind.CREDENTIAL_OFFER, "my-first-offer")

    assert transport_string == CREDENTIAL_OFFER
    record = store.get(FlowKind.CREDENTIAL_OFFER, "my-first-offer")
    assert record.state == FlowState.AWAITING_COMPLETION
    assert record.error is None


async def test_initiate_all_continues_past_a_failing_flow(initiator, service, store):
    service.respond("/v1/offers", httpx.Response(404))

    results = await initiator.initiate_all("my-first-offer")

    assert results == {
        FlowKind.CREDENTIAL_OFFER: None,
        FlowKind.SELF_ISSUED_IDENTITY_REQUEST: AUTHORIZATION_REQUEST,
        FlowKind.PRESENTATION_REQUEST: PRESENTATION_REQUEST,
    }
    assert store.get(FlowKind.CREDENTIAL_OFFER, "my-first-offer").state == FlowState.FAILED
    assert len(store.pending()) == 2


async def test_initiate_all_sends_one_request_per_flow(initiator, service):
    await initiator.initiate_all("my-first-offer")

    assert len(service.calls("/v1/offers")) == 1
    assert len(service.calls("/v1/authorization_requests")) == 2


def test_print_transport_strings(capsys):
    print_transport_strings(
        {
            FlowKind.CREDENTIAL_OFFER: CREDENTIAL_OFFER,
            FlowKind.SELF_ISSUED_IDENTITY_REQUEST: None,
            FlowKind.PRESENTATION_REQUEST: PRESENTATION_REQUEST,
        }
    )

    out = capsys.readouterr().out.splitlines()
    assert out == [
        f"form_url_encoded_credential_offer: {CREDENTIAL_OFFER}",
        "form_url_encoded_authorization_request_with_presentation_definition: "
        f"{PRESENTATION_REQUEST}",
    ]
