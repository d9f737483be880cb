from unittest.mock import AsyncMock

import pytest

from ondc_adapter.commerce.interface import meta_value
from ondc_adapter.commerce.sandbox_backend import SandboxBackend
from ondc_adapter.config import settings
from ondc_adapter.core.errors import PlatformRejection, TransientUpstreamError
from ondc_adapter.pipelines.base import PipelineState
from ondc_adapter.pipelines.cancel import CancelPipeline
from ondc_adapter.pipelines.confirm import ConfirmPipeline
from ondc_adapter.pipelines.init import InitPipeline
from ondc_adapter.pipelines.registry import PIPELINES, get_pipeline
from ondc_adapter.pipelines.search import SearchPipeline
from ondc_adapter.pipelines.select import SelectPipeline, product_id_from_item
from ondc_adapter.pipelines.status import StatusPipeline
from ondc_adapter.pipelines.update import UpdatePipeline
from ondc_adapter.protocol.schemas import (
    CancelRequest,
    ConfirmRequest,
    InitRequest,
    SearchRequest,
    SelectRequest,
    StatusRequest,
    UpdateRequest,
)


BILLING = {
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address": {"building": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "area_code": "560001"},
}


@pytest.fixture
def build(sandbox, dispatcher, fast_policy, sleeps):
    def _build(pipeline_class, platform=None):
        return pipeline_class(platform or sandbox, dispatcher, policy=fast_policy, sleep=sleeps)
    return _build


def init_request(make_context, message_id="msg-1", billing=BILLING):
    order = {
        "items": [{"id": "101", "quantity": {"count": 2}}],
        "fulfillments": [{"id": "F1", "end": {"location": {"gps": "12.9,77.6", "address": {"name": "Home"}}}}],
    }
    if billing is not None:
        order["billing"] = billing
    return InitRequest.model_validate({
        "context": make_context("init", transaction_id="txn-init", message_id=message_id),
        "message": {"order": order},
    })


# --- search ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_callback_echoes_transaction(build, callbacks, make_context):
    request = SearchRequest.model_validate({
        "context": make_context("search", transaction_id="txn-42", message_id="msg-42"),
        "message": {"intent": {}},
    })

    result = await build(SearchPipeline).run(request)

    assert result.state == PipelineState.DELIVERED
    assert result.history == [
        PipelineState.RECEIVED,
        PipelineState.ACKNOWLEDGED,
        PipelineState.VALIDATING,
        PipelineState.PROCESSING,
        PipelineState.AWAITING_CALLBACK,
        PipelineState.DELIVERED,
    ]
    payload = callbacks.payloads[0]
    assert callbacks.paths == ["/ondc/on_search"]
    assert payload["context"]["action"] == "on_search"
    assert payload["context"]["transaction_id"] == "txn-42"
    assert payload["context"]["message_id"] == "msg-42"
    assert payload["context"]["bpp_id"] == settings.BPP_ID
    items = payload["message"]["catalog"]["bpp/providers"][0]["items"]
    assert [item["id"] for item in items] == ["101"]


@pytest.mark.asyncio
async def test_unknown_city_search_equals_default_search(build, callbacks, make_context):
    for city in ("std:999", "default"):
        request = SearchRequest.model_validate({"context": make_context("search", city=city), "message": {}})
        await build(SearchPipeline).run(request)

    unknown, default = (payload["message"]["catalog"]["bpp/providers"] for payload in callbacks.payloads)
    assert unknown == default
    assert {item["id"] for item in unknown[0]["items"]} == {"101", "102"}


@pytest.mark.asyncio
async def test_search_narrows_by_category(build, callbacks, make_context):
    request = SearchRequest.model_validate({
        "context": make_context("search", city="default"),
        "message": {"intent": {"category": {"id": "16"}}},
    })

    await build(SearchPipeline).run(request)

    items = callbacks.payloads[0]["message"]["catalog"]["bpp/providers"][0]["items"]
    assert [item["id"] for item in items] == ["102"]


@pytest.mark.asyncio
async def test_search_undelivered_is_abandoned(build, callbacks, make_context):
    callbacks.statuses = [500, 500, 500]
    request = SearchRequest.model_validate({"context": make_context("search"), "message": {}})

    result = await build(SearchPipeline).run(request)

    assert result.state == PipelineState.ABANDONED
    assert result.callback.attempts == 3


# --- select ---------------------------------------------------------------


def test_product_id_from_item():
    assert product_id_from_item("I12") == "12"
    assert product_id_from_item("12") == "12"


@pytest.mark.asyncio
async def test_select_quotes_available_items(build, callbacks, make_context):
    request = SelectRequest.model_validate({
        "context": make_context("select"),
        "message": {"order": {
            "items": [
                {"id": "I101", "quantity": {"count": 2}},
                {"id": "999", "quantity": {"count": 1}},
                {"id": "103", "quantity": {"count": 1}},
            ],
            "fulfillments": [{"id": "F1", "end": {"location": {"gps": "12.9,77.6"}}}],
        }},
    })

    result = await build(SelectPipeline).run(request)

    assert result.state == PipelineState.DELIVERED
    order = callbacks.payloads[0]["message"]["order"]
    assert [item["@ondc/org/available"] for item in order["items"]] == [True, False, False]
    assert order["fulfillments"][0]["state"]["descriptor"]["code"] == "Serviceable"
    # 800 + 144 tax + 206.60 delivery + 25 packing for four units
    assert order["quote"]["price"]["value"] == "1175.60"


@pytest.mark.asyncio
async def test_select_does_not_mutate(build, sandbox, make_context):
    request = SelectRequest.model_validate({
        "context": make_context("select"),
        "message": {"order": {"items": [{"id": "101"}]}},
    })

    await build(SelectPipeline).run(request)

    assert sandbox.orders == {}
    assert set(sandbox.products) == {"101", "102", "103"}


# --- init -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_init_creates_tagged_pending_order(build, sandbox, callbacks, make_context):
    result = await build(InitPipeline).run(init_request(make_context))

    assert result.state == PipelineState.DELIVERED
    (order,) = sandbox.orders.values()
    assert order["status"] == "pending"
    assert order["payment_method"] == "cod"
    assert meta_value(order, "ondc_transaction_id") == "txn-init"
    assert order["billing"]["first_name"] == "Asha"

    placeholder = await sandbox.find_product_by_sku("ONDC-101")
    assert order["line_items"][0]["product_id"] == placeholder["id"]

    callback = callbacks.payloads[0]
    assert callback["context"]["action"] == "on_init"
    assert callback["message"]["order"]["state"] == "Created"
    assert callback["message"]["order"]["id"] == str(order["id"])


@pytest.mark.asyncio
async def test_init_is_idempotent_per_transaction(build, sandbox, callbacks, make_context):
    await build(InitPipeline).run(init_request(make_context, message_id="msg-1"))
    await build(InitPipeline).run(init_request(make_context, message_id="msg-2"))

    assert len(sandbox.orders) == 1
    assert len(await sandbox.list_products({"category": None})) == 4
    first, second = (payload["message"]["order"]["id"] for payload in callbacks.payloads)
    assert first == second


@pytest.mark.asyncio
async def test_init_without_billing_is_final(build, sandbox, callbacks, make_context):
    result = await build(InitPipeline).run(init_request(make_context, billing=None))

    assert result.state == PipelineState.ABANDONED
    assert "billing" in result.error
    assert sandbox.orders == {}
    assert callbacks.requests == []


@pytest.mark.asyncio
async def test_init_undelivered_cancels_created_order(build, sandbox, callbacks, make_context):
    callbacks.statuses = [500, 500, 500]

    result = await build(InitPipeline).run(init_request(make_context))

    assert result.state == PipelineState.COMPENSATED_CANCEL
    (order,) = sandbox.orders.values()
    assert order["status"] == "cancelled"
    assert meta_value(order, "ondc_cancellation_reason") == "998"


@pytest.mark.asyncio
async def test_init_after_compensated_cancel_creates_fresh_order(build, sandbox, callbacks, make_context):
    callbacks.statuses = [500, 500, 500]
    first = await build(InitPipeline).run(init_request(make_context, message_id="msg-1"))
    assert first.state == PipelineState.COMPENSATED_CANCEL

    second = await build(InitPipeline).run(init_request(make_context, message_id="msg-2"))

    assert second.state == PipelineState.DELIVERED
    assert len(sandbox.orders) == 2
    cancelled_id = first.message["order"]["id"]
    callback_order = callbacks.payloads[-1]["message"]["order"]
    assert callback_order["id"] != cancelled_id
    assert callback_order["state"] == "Created"
    assert sandbox.orders[cancelled_id]["status"] == "cancelled"
    assert sandbox.orders[callback_order["id"]]["status"] == "pending"


@pytest.mark.asyncio
async def test_failed_init_leaves_earlier_order_untouched(build, sandbox, make_context):
    first = await build(InitPipeline).run(init_request(make_context, message_id="msg-1"))
    assert first.state == PipelineState.DELIVERED
    sandbox.find_orders_by_meta = AsyncMock(side_effect=TransientUpstreamError("gateway timeout", status_code=504))

    second = await build(InitPipeline).run(init_request(make_context, message_id="msg-2"))

    assert second.state == PipelineState.ABANDONED
    (order,) = sandbox.orders.values()
    assert order["status"] == "pending"


# --- confirm --------------------------------------------------------------


def confirm_request(make_context, order_id="15", transaction_id="txn-15"):
    order = {"id": order_id} if order_id is not None else {}
    return ConfirmRequest.model_validate({
        "context": make_context("confirm", transaction_id=transaction_id),
        "message": {"order": order},
    })


@pytest.mark.asyncio
async def test_confirm_accepts_order(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order()])

    result = await build(ConfirmPipeline, sandbox).run(confirm_request(make_context))

    assert result.state == PipelineState.DELIVERED
    order = sandbox.orders["15"]
    assert order["status"] == "processing"
    assert meta_value(order, "ondc_confirmed") == "true"
    assert meta_value(order, "ondc_state") == "Accepted"
    assert callbacks.payloads[0]["message"]["order"]["state"] == "Accepted"


@pytest.mark.asyncio
async def test_confirm_order_15_rolled_back_when_on_confirm_undelivered(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order(order_id=15)])
    callbacks.statuses = [500, 500, 500]

    result = await build(ConfirmPipeline, sandbox).run(confirm_request(make_context))

    assert result.callback.attempts == 3
    assert len(callbacks.requests) == 3
    assert result.state == PipelineState.COMPENSATED_CANCEL
    assert result.history[-2:] == [PipelineState.AWAITING_CALLBACK, PipelineState.COMPENSATED_CANCEL]
    order = sandbox.orders["15"]
    assert order["status"] == "cancelled"
    assert meta_value(order, "ondc_cancellation_reason") == "998"
    assert meta_value(order, "ondc_cancellation_description") == "Order cancelled because of order confirmation failure"


@pytest.mark.asyncio
async def test_confirm_falls_back_to_transaction_tag(build, make_order, make_context):
    sandbox = SandboxBackend(orders=[make_order(order_id=15, transaction_id="txn-15")])

    result = await build(ConfirmPipeline, sandbox).run(confirm_request(make_context, order_id=None))

    assert result.state == PipelineState.DELIVERED
    assert sandbox.orders["15"]["status"] == "processing"


@pytest.mark.asyncio
async def test_confirm_of_cancelled_order_is_final(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order(status="cancelled")])
    sandbox.get_order = AsyncMock(wraps=sandbox.get_order)

    result = await build(ConfirmPipeline, sandbox).run(confirm_request(make_context))

    assert result.state == PipelineState.ABANDONED
    assert sandbox.get_order.await_count == 1
    assert callbacks.requests == []


@pytest.mark.asyncio
async def test_confirm_processing_failure_cancels_directly(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order()])
    real_update = sandbox.update_order

    async def flaky_update(order_id, patch):
        if patch.get("status") == "processing":
            raise TransientUpstreamError("gateway timeout", status_code=504)
        return await real_update(order_id, patch)

    sandbox.update_order = flaky_update

    result = await build(ConfirmPipeline, sandbox).run(confirm_request(make_context))

    assert result.state == PipelineState.ABANDONED
    assert sandbox.orders["15"]["status"] == "cancelled"
    assert callbacks.requests == []


# --- status ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_status_of_processing_order(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order(status="processing")])
    request = StatusRequest.model_validate({"context": make_context("status"), "message": {"order_id": "O15"}})

    result = await build(StatusPipeline, sandbox).run(request)

    assert result.state == PipelineState.DELIVERED
    order = callbacks.payloads[0]["message"]["order"]
    assert order["state"] == "Accepted"
    assert order["fulfillments"][0]["state"]["descriptor"]["code"] == "Packed"


@pytest.mark.asyncio
async def test_status_of_missing_order_is_not_retried(build, sandbox, callbacks, make_context):
    sandbox.get_order = AsyncMock(side_effect=PlatformRejection("Order 77 not found", status_code=404))
    request = StatusRequest.model_validate({"context": make_context("status"), "message": {"order_id": "77"}})

    result = await build(StatusPipeline).run(request)

    assert result.state == PipelineState.ABANDONED
    assert sandbox.get_order.await_count == 1
    assert callbacks.requests == []


@pytest.mark.asyncio
async def test_status_retries_transient_platform_errors(build, make_order, sleeps, make_context):
    sandbox = SandboxBackend()
    sandbox.get_order = AsyncMock(side_effect=[
        TransientUpstreamError("timeout"),
        TransientUpstreamError("timeout"),
        make_order(status="completed"),
    ])
    request = StatusRequest.model_validate({"context": make_context("status"), "message": {"order_id": "15"}})

    result = await build(StatusPipeline, sandbox).run(request)

    assert result.state == PipelineState.DELIVERED
    assert sandbox.get_order.await_count == 3
    assert len(sleeps.delays) == 2
    assert result.message["order"]["state"] == "Completed"


# --- update ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_applies_billing_and_shipping(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order()])
    request = UpdateRequest.model_validate({
        "context": make_context("update"),
        "message": {
            "update_target": "billing",
            "order": {
                "id": "15",
                "billing": {"name": "Ravi Kumar", "phone": "9000000000", "address": {"city": "Pune"}},
                "fulfillments": [{"end": {"location": {"address": {"name": "Flat 4", "city": "Pune"}}}}],
            },
        },
    })

    result = await build(UpdatePipeline, sandbox).run(request)

    assert result.state == PipelineState.DELIVERED
    order = sandbox.orders["15"]
    assert order["billing"]["first_name"] == "Ravi"
    assert order["billing"]["city"] == "Pune"
    assert order["shipping"]["address_1"] == "Flat 4"
    assert callbacks.payloads[0]["message"]["order"]["billing"]["name"] == "Ravi Kumar"


@pytest.mark.asyncio
async def test_update_of_cancelled_order_is_final(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order(status="cancelled")])
    request = UpdateRequest.model_validate({
        "context": make_context("update"),
        "message": {"order_id": "15", "order": {"billing": {"name": "Ravi"}}},
    })

    result = await build(UpdatePipeline, sandbox).run(request)

    assert result.state == PipelineState.ABANDONED
    assert sandbox.orders["15"]["billing"]["first_name"] == "Asha"
    assert callbacks.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["refunded", "failed", "trash"])
async def test_update_of_terminal_order_is_final(build, make_order, callbacks, make_context, status):
    sandbox = SandboxBackend(orders=[make_order(status=status)])
    sandbox.update_order = AsyncMock(wraps=sandbox.update_order)
    request = UpdateRequest.model_validate({
        "context": make_context("update"),
        "message": {"order_id": "15", "order": {"billing": {"name": "Ravi"}}},
    })

    result = await build(UpdatePipeline, sandbox).run(request)

    assert result.state == PipelineState.ABANDONED
    assert status in result.error
    assert sandbox.update_order.await_count == 0
    assert sandbox.orders["15"]["status"] == status
    assert callbacks.requests == []


# --- cancel ---------------------------------------------------------------


def cancel_request(make_context, reason="002", fulfillment_id=None):
    message = {"order_id": "15", "cancellation_reason_id": reason}
    if fulfillment_id:
        message["descriptor"] = {"short_desc": fulfillment_id}
    return CancelRequest.model_validate({"context": make_context("cancel"), "message": message})


@pytest.mark.asyncio
async def test_whole_order_cancellation(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order(fulfillments=("F1", "F2"))])

    result = await build(CancelPipeline, sandbox).run(cancel_request(make_context))

    assert result.state == PipelineState.DELIVERED
    order = sandbox.orders["15"]
    assert order["status"] == "cancelled"
    assert meta_value(order, "ondc_cancellation_reason") == "002"
    callback_order = callbacks.payloads[0]["message"]["order"]
    assert callback_order["state"] == "Cancelled"
    assert callback_order["cancellation_reason_id"] == "002"


@pytest.mark.asyncio
async def test_partial_cancellation_keeps_order_status(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order(status="processing", fulfillments=("F1", "F2"))])

    result = await build(CancelPipeline, sandbox).run(cancel_request(make_context, fulfillment_id="F2"))

    assert result.state == PipelineState.DELIVERED
    order = sandbox.orders["15"]
    assert order["status"] == "processing"
    assert meta_value(order, "ondc_cancelled_fulfillments") == "F2"
    states = {
        f["id"]: f["state"]["descriptor"]["code"]
        for f in callbacks.payloads[0]["message"]["order"]["fulfillments"]
    }
    assert states == {"F1": "Packed", "F2": "Cancelled"}


@pytest.mark.asyncio
async def test_cancelling_last_live_fulfillment_cancels_order(build, make_order, callbacks, make_context):
    order = make_order(status="processing", fulfillments=("F1", "F2"))
    order["meta_data"].append({"key": "ondc_cancelled_fulfillments", "value": "F1"})
    sandbox = SandboxBackend(orders=[order])

    result = await build(CancelPipeline, sandbox).run(cancel_request(make_context, fulfillment_id="F2"))

    assert result.state == PipelineState.DELIVERED
    order = sandbox.orders["15"]
    assert order["status"] == "cancelled"
    assert meta_value(order, "ondc_cancellation_reason") == "002"
    assert callbacks.payloads[0]["message"]["order"]["state"] == "Cancelled"


@pytest.mark.asyncio
async def test_cancelling_only_fulfillment_cancels_order(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order(status="processing")])

    result = await build(CancelPipeline, sandbox).run(cancel_request(make_context, fulfillment_id="F1"))

    assert result.state == PipelineState.DELIVERED
    assert sandbox.orders["15"]["status"] == "cancelled"
    assert callbacks.payloads[0]["message"]["order"]["state"] == "Cancelled"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,reason,fulfillment_id",
    [
        ("pending", "999", None),
        ("cancelled", "002", None),
        ("refunded", "002", None),
        ("failed", "002", None),
        ("trash", "002", None),
        ("pending", "002", "F9"),
    ],
)
async def test_cancel_validation_failures_are_final(build, make_order, callbacks, make_context,
                                                    status, reason, fulfillment_id):
    sandbox = SandboxBackend(orders=[make_order(status=status)])
    sandbox.update_order = AsyncMock(wraps=sandbox.update_order)

    result = await build(CancelPipeline, sandbox).run(
        cancel_request(make_context, reason=reason, fulfillment_id=fulfillment_id)
    )

    assert result.state == PipelineState.ABANDONED
    assert sandbox.update_order.await_count == 0
    assert sandbox.orders["15"]["status"] == status
    assert callbacks.requests == []


@pytest.mark.asyncio
async def test_cancel_falls_back_to_status_only_cancellation(build, make_order, callbacks, make_context):
    sandbox = SandboxBackend(orders=[make_order()])
    real_update = sandbox.update_order
    patches = []

    async def flaky_update(order_id, patch):
        patches.append(patch)
        if "meta_data" in patch:
            raise TransientUpstreamError("service unavailable", status_code=503)
        return await real_update(order_id, patch)

    sandbox.update_order = flaky_update

    result = await build(CancelPipeline, sandbox).run(cancel_request(make_context))

    assert result.state == PipelineState.ABANDONED
    assert len(patches) == 4
    order = sandbox.orders["15"]
    assert order["status"] == "cancelled"
    assert order["customer_note"].startswith("Emergency cancellation")
    assert callbacks.requests == []


# --- shared ---------------------------------------------------------------


@pytest.mark.asyncio
async def test_unexpected_errors_never_escape(build, sandbox, make_context):
    sandbox.list_products = AsyncMock(side_effect=RuntimeError("boom"))
    request = SearchRequest.model_validate({"context": make_context("search"), "message": {}})

    result = await build(SearchPipeline).run(request)

    assert result.state == PipelineState.ABANDONED
    assert result.error == "boom"
    assert sandbox.list_products.await_count == 1


def test_registry_covers_every_action(sandbox, dispatcher):
    assert set(PIPELINES) == {"search", "select", "init", "confirm", "status", "update", "cancel"}
    assert isinstance(get_pipeline("cancel", sandbox, dispatcher), CancelPipeline)
    with pytest.raises(ValueError):
        get_pipeline("rate", sandbox, dispatcher)
