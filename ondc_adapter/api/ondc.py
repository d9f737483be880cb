"""
ONDC Protocol Endpoints
Acknowledges each inbound action synchronously and hands it to its pipeline
as a background task; the result reaches the buyer app as an on_<action> callback
"""
import logging
from typing import Dict

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ondc_adapter.commerce.factory import get_commerce_backend
from ondc_adapter.commerce.interface import CommercePlatform
from ondc_adapter.core.callbacks import CallbackDispatcher, get_callback_dispatcher
from ondc_adapter.core.errors import StructuralError
from ondc_adapter.pipelines.registry import get_pipeline
from ondc_adapter.protocol.acks import ack, nack
from ondc_adapter.protocol.schemas import (
    ACTIONS,
    CallbackEnvelope,
    CancelRequest,
    ConfirmRequest,
    InitRequest,
    ProtocolRequest,
    SearchRequest,
    SelectRequest,
    StatusRequest,
    UpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["ondc"])
webhook_router = APIRouter(prefix="/webhook", tags=["webhook"])

# Actions that commit platform state answer 202; read-style actions answer 200
ACK_STATUS: Dict[str, int] = {
    "search": 200,
    "select": 200,
    "init": 202,
    "confirm": 202,
    "status": 200,
    "update": 200,
    "cancel": 202,
}


def acknowledge(
    action: str,
    request: ProtocolRequest,
    background_tasks: BackgroundTasks,
    platform: CommercePlatform,
    dispatcher: CallbackDispatcher,
) -> JSONResponse:
    """
    Schedule the action's pipeline and return the ACK

    The pipeline only runs once the response has been sent, so no platform
    call can delay or change the acknowledgment.

    Raises:
        StructuralError: if context.action does not name this route's action
    """
    context = request.context
    if context.action != action:
        raise StructuralError(f"context.action '{context.action}' does not match /{action}")

    pipeline = get_pipeline(action, platform, dispatcher)
    background_tasks.add_task(pipeline.run, request)
    logger.info(f"[{context.transaction_id}] {action} acknowledged (message {context.message_id})")

    return JSONResponse(status_code=ACK_STATUS[action], content=ack(context.acknowledged()))


@router.post("/search")
async def search(
    request: SearchRequest,
    background_tasks: BackgroundTasks,
    platform: CommercePlatform = Depends(get_commerce_backend),
    dispatcher: CallbackDispatcher = Depends(get_callback_dispatcher),
):
    """Catalog discovery; catalog is returned through on_search"""
    return acknowledge("search", request, background_tasks, platform, dispatcher)


@router.post("/select")
async def select(
    request: SelectRequest,
    background_tasks: BackgroundTasks,
    platform: CommercePlatform = Depends(get_commerce_backend),
    dispatcher: CallbackDispatcher = Depends(get_callback_dispatcher),
):
    """Quote and availability; returned through on_select"""
    return acknowledge("select", request, background_tasks, platform, dispatcher)


@router.post("/init")
async def init(
    request: InitRequest,
    background_tasks: BackgroundTasks,
    platform: CommercePlatform = Depends(get_commerce_backend),
    dispatcher: CallbackDispatcher = Depends(get_callback_dispatcher),
):
    """Create the pending order for this transaction"""
    return acknowledge("init", request, background_tasks, platform, dispatcher)


@router.post("/confirm")
async def confirm(
    request: ConfirmRequest,
    background_tasks: BackgroundTasks,
    platform: CommercePlatform = Depends(get_commerce_backend),
    dispatcher: CallbackDispatcher = Depends(get_callback_dispatcher),
):
    """Confirm the order created on init"""
    return acknowledge("confirm", request, background_tasks, platform, dispatcher)


@router.post("/status")
async def status(
    request: StatusRequest,
    background_tasks: BackgroundTasks,
    platform: CommercePlatform = Depends(get_commerce_backend),
    dispatcher: CallbackDispatcher = Depends(get_callback_dispatcher),
):
    return acknowledge("status", request, background_tasks, platform, dispatcher)


@router.post("/update")
async def update(
    request: UpdateRequest,
    background_tasks: BackgroundTasks,
    platform: CommercePlatform = Depends(get_commerce_backend),
    dispatcher: CallbackDispatcher = Depends(get_callback_dispatcher),
):
    return acknowledge("update", request, background_tasks, platform, dispatcher)


@router.post("/cancel")
async def cancel(
    request: CancelRequest,
    background_tasks: BackgroundTasks,
    platform: CommercePlatform = Depends(get_commerce_backend),
    dispatcher: CallbackDispatcher = Depends(get_callback_dispatcher),
):
    """Whole-order or single-fulfillment cancellation"""
    return acknowledge("cancel", request, background_tasks, platform, dispatcher)


@webhook_router.post("/{callback_action}")
async def relay_callback(
    callback_action: str,
    request: Request,
    dispatcher: CallbackDispatcher = Depends(get_callback_dispatcher),
):
    """
    Deliver a callback built outside the request flow (e.g. a platform-side
    status change) to the buyer app named in its context
    """
    action = callback_action[3:] if callback_action.startswith("on_") else callback_action
    if action not in ACTIONS:
        return JSONResponse(
            status_code=400,
            content=nack(f"Unknown callback action: {callback_action}", "DOMAIN-ERROR", "10001"),
        )

    try:
        body = await request.json()
        envelope = CallbackEnvelope.model_validate(body)
    except (ValueError, ValidationError) as e:
        return JSONResponse(status_code=400, content=nack(f"Invalid callback payload: {e}"))

    transaction_id = envelope.context.transaction_id
    try:
        result = await dispatcher.deliver(body, envelope.context.bap_uri, action)
    except Exception as e:
        logger.exception(f"[{transaction_id}] Webhook relay of on_{action} failed")
        return JSONResponse(status_code=500, content=nack(str(e), "CORE-ERROR", "20000"))

    if not result.success:
        return JSONResponse(
            status_code=502,
            content=nack(
                f"on_{action} not delivered after {result.attempts} attempts: {result.last_error}",
                "CORE-ERROR",
                "20002",
            ),
        )
    return ack()
