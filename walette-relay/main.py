import html
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse

from config import Settings, get_settings
from credentials import load_credential, load_signing_key
from errors import CorrelationMismatch, FlowClosed, ReactionError, ReactionIOError
from events import decode, event_name
from flows import FLOW_ORDER, TRANSPORT_LABELS, FlowInitiator, print_transport_strings
from logs import RequestContextMiddleware, get_logger, setup_logging
from models import FlowView
from reactor import FlowReactor
from storage import FlowStore
from unicore import UniCoreClient

logger = get_logger(__name__)

ACKNOWLEDGEMENT = "It works!"


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)

        async with httpx.AsyncClient(
            base_url=settings.SERVICE_BASE_URL,
            timeout=settings.HTTP_TIMEOUT,
            transport=transport,
        ) as client:
            unicore = UniCoreClient(client, settings)
            store = FlowStore()
            signing_key = (
                load_signing_key(settings.SIGNING_KEY_PATH) if settings.SIGNING_KEY_PATH else None
            )

            app.state.store = store
            app.state.initiator = FlowInitiator(unicore, store, settings)
            app.state.reactor = FlowReactor(
                unicore,
                store,
                settings,
                credential=load_credential(settings.CREDENTIAL_FIXTURE_PATH),
                signing_key=signing_key,
            )

            if settings.INITIATE_ON_STARTUP:
                # Prepare some form url encoded strings to be rendered as QR codes.
                results = await app.state.initiator.initiate_all(settings.CORRELATION_ID)
                print_transport_strings(results)
            else:
                for kind in FLOW_ORDER:
                    store.open(kind, settings.CORRELATION_ID)

            logger.info(
                "event_listener_ready",
                path=settings.EVENT_LISTENER_PATH,
                awaiting=len(store.pending()),
            )
            yield

    app = FastAPI(title=settings.APP_TITLE, version=settings.APP_VERSION, lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)

    @app.post(settings.EVENT_LISTENER_PATH, response_class=PlainTextResponse)
    async def event_listener(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        logger.info("event_received", payload=payload)

        # Three kinds of events to listen to:
        # 1. Credential Request Verified
        # 2. SIOPv2 Authorization Response Verified --> `id_token`
        # 3. OID4VP Authorization Response Verified --> `vp_token`
        event = decode(payload)
        if event is None:
            logger.info("event_ignored")
            return ACKNOWLEDGEMENT

        try:
            await request.app.state.reactor.react(event)
        except CorrelationMismatch as e:
            logger.warning(
                "correlation_mismatch",
                kind=e.kind.value,
                expected=e.expected,
                received=e.received,
            )
        except FlowClosed as e:
            logger.warning(
                "event_for_closed_flow",
                kind=e.kind.value,
                correlation_id=e.correlation_id,
                state=e.state,
            )
        except ReactionIOError as e:
            logger.error(
                "reaction_failed",
                kind=e.kind.value,
                correlation_id=e.correlation_id,
                reason=e.reason,
            )
        except ReactionError as e:
            logger.error("reaction_failed", event=event_name(event), reason=str(e))
        except Exception:
            logger.exception("reaction_crashed", event=event_name(event))
        return ACKNOWLEDGEMENT

    @app.get("/flows", response_model=List[FlowView])
    def list_flows(request: Request):
        return request.app.state.store.views()

    @app.get("/", response_class=HTMLResponse)
    def flows_page(request: Request):
        rows = []
        for record in request.app.state.store.list():
            label = html.escape(TRANSPORT_LABELS[record.kind])
            if record.transport_string:
                link = html.escape(record.transport_string, quote=True)
                body = f'<code>{link}</code><br/><a href="{link}">Open in wallet</a>'
            else:
                body = f"<em>{html.escape(record.error or record.state.value)}</em>"
            rows.append(
                f"<h2>{label}</h2><p>State: {record.state.value}</p><p>{body}</p>"
            )

        return HTMLResponse(content=f"""
        <html>
        <body>
          <h1>{html.escape(settings.APP_TITLE)}</h1>
          <p>Scan these with your wallet:</p>
          {''.join(rows)}
        </body>
        </html>
        """)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()


def main():
    settings = get_settings()
    uvicorn.run(app, host=settings.LISTEN_HOST, port=settings.LISTEN_PORT, log_config=None)


if __name__ == "__main__":
    main()
