"""
Gateway API

FastAPI app that drives tenant sessions over HTTP.

Responsibilities:
- Initialize a tenant's session and return its QR code as a PNG
- Report whether a tenant is ready
- Send text and media messages, set the profile status, log out
- Receive Evolution API webhooks and route them to the owning session

Every gateway error is returned as {"error": ..., "kind": ...} with the
error's status code.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from basecore.logging import setup_logging
from basecore.settings import get_settings

from session_gateway.errors import GatewayError
from session_gateway.qr import PNG_MEDIA_TYPE, render_qr_png
from session_gateway.service import GatewayService, build_gateway_service
from session_gateway.transport.evolution.webhook import validate_api_key

setup_logging()
logger = logging.getLogger(__name__)


def get_gateway(request: Request) -> GatewayService:
    return request.app.state.gateway


def create_app(gateway: GatewayService | None = None) -> FastAPI:
    """
    Build the API.

    Args:
        gateway: Service to use; built from settings on startup when omitted
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.gateway is None:
            app.state.gateway = build_gateway_service(settings)
        logger.info("Gateway API started", extra={"transport": settings.TRANSPORT_PROVIDER})
        try:
            yield
        finally:
            await app.state.gateway.shutdown()
            logger.info("Gateway API stopped")

    app = FastAPI(
        title="Session Gateway",
        description="Multi-tenant messaging session gateway",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            f"Request failed: {exc.message}",
            extra={"path": request.url.path, "kind": exc.kind.value},
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    async def health(gateway: GatewayService = Depends(get_gateway)):
        """Health check endpoint."""
        return {"status": "healthy", "service": "gateway-api", "active_sessions": len(gateway.registry)}

    @app.get("/initialize-client")
    async def initialize_client(
        client_id: Optional[str] = Query(None, alias="clientId"),
        gateway: GatewayService = Depends(get_gateway),
    ):
        """
        Start a tenant's session.

        Returns the QR code as image/png, or JSON when the tenant was
        restored from stored credentials and needs no QR code.
        """
        result = await gateway.initialize_session(client_id)

        if result.already_authenticated:
            return {"message": f"Client {result.tenant_id} authenticated with stored credentials"}

        return Response(content=render_qr_png(result.qr_payload), media_type=PNG_MEDIA_TYPE)

    @app.get("/status")
    async def status(
        client_id: Optional[str] = Query(None, alias="clientId"),
        gateway: GatewayService = Depends(get_gateway),
    ):
        session_status = gateway.get_status(client_id)
        return {"message": f"Client {session_status.tenant_id} is ready", **session_status.to_dict()}

    @app.get("/message")
    async def send_message(
        client_id: Optional[str] = Query(None, alias="clientId"),
        to: Optional[str] = Query(None),
        message: Optional[str] = Query(None),
        gateway: GatewayService = Depends(get_gateway),
    ):
        ack = await gateway.send_message(client_id, to, message)
        return {"message": "Message sent", "message_id": ack.message_id}

    @app.post("/send-media")
    async def send_media(
        client_id: Optional[str] = Form(None, alias="clientId"),
        to: Optional[str] = Form(None),
        caption: Optional[str] = Form(None),
        file: Optional[UploadFile] = File(None),
        gateway: GatewayService = Depends(get_gateway),
    ):
        data = await file.read() if file is not None else b""
        ack = await gateway.send_media(
            client_id,
            to,
            data,
            file.content_type if file is not None else None,
            caption=caption,
            file_name=file.filename if file is not None else None,
        )
        return {"message": "Media sent", "message_id": ack.message_id}

    @app.get("/set-status")
    async def set_status(
        client_id: Optional[str] = Query(None, alias="clientId"),
        status_message: Optional[str] = Query(None, alias="statusMessage"),
        gateway: GatewayService = Depends(get_gateway),
    ):
        await gateway.set_status(client_id, status_message)
        return {"message": "Status updated"}

    @app.get("/logout")
    async def logout(
        client_id: Optional[str] = Query(None, alias="clientId"),
        gateway: GatewayService = Depends(get_gateway),
    ):
        await gateway.logout(client_id)
        return {"message": f"Client {client_id} logged out"}

    @app.post("/webhook/evolution")
    async def evolution_webhook(request: Request, gateway: GatewayService = Depends(get_gateway)):
        """
        Receive a webhook from Evolution API.

        Always answers 200 for well-formed payloads so Evolution does not
        retry events nobody owns.
        """
        if settings.EVOLUTION_WEBHOOK_API_KEY:
            if not validate_api_key(dict(request.headers), settings.EVOLUTION_WEBHOOK_API_KEY):
                logger.warning("Invalid Evolution API key")
                raise HTTPException(status_code=403, detail="Invalid API key")

        try:
            payload = json.loads(await request.body())
        except json.JSONDecodeError:
            logger.warning("Invalid JSON payload")
            raise HTTPException(status_code=400, detail="Invalid JSON")

        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")

        dispatched = await gateway.dispatch_evolution_webhook(payload)
        return {"status": "accepted" if dispatched else "ignored"}

    return app


app = create_app()
