import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from ondc_adapter.commerce.sandbox_backend import SandboxBackend
from ondc_adapter.core.callbacks import CallbackDispatcher
from ondc_adapter.core.retry import RetryPolicy
from ondc_adapter.protocol.acks import ack, nack

BAP_URI = "https://buyer.example.com/ondc"


class CallbackRecorder:
    """Stands in for the buyer app: records every callback and answers with scripted statuses"""

    def __init__(self, statuses: Optional[List[int]] = None, nack_body: bool = False):
        self.requests: List[httpx.Request] = []
        self.statuses = list(statuses or [])
        self.nack_body = nack_body

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        if self.nack_body:
            return httpx.Response(status, json=nack("rejected by buyer app"))
        return httpx.Response(status, json=ack())

    @property
    def payloads(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]

    @property
    def paths(self) -> List[str]:
        return [request.url.path for request in self.requests]


class SleepRecorder:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def build_context(action: str, transaction_id: str = "txn-1", message_id: str = "msg-1",
                  city: str = "std:080") -> Dict[str, Any]:
    return {
        "domain": "ONDC:RET10",
        "country": "IND",
        "city": city,
        "action": action,
        "core_version": "1.2.0",
        "bap_id": "buyer.example.com",
        "bap_uri": BAP_URI,
        "transaction_id": transaction_id,
        "message_id": message_id,
        "timestamp": "2024-05-01T10:00:00.000Z",
        "ttl": "PT30S",
    }


def sample_order(order_id: int = 15, status: str = "pending", transaction_id: str = "txn-15",
                 fulfillments: tuple = ("F1",)) -> Dict[str, Any]:
    """WooCommerce-shaped order with one line per fulfillment"""
    return {
        "id": order_id,
        "status": status,
        "currency": "INR",
        "total": f"{400 * len(fulfillments)}.00",
        "billing": {
            "first_name": "Asha",
            "last_name": "Rao",
            "email": "asha@example.com",
            "phone": "9876543210",
            "city": "Bengaluru",
            "postcode": "560001",
        },
        "shipping": {"first_name": "Asha", "city": "Bengaluru", "postcode": "560001"},
        "line_items": [
            {
                "id": index + 1,
                "product_id": 101,
                "name": "Organic Honey",
                "quantity": 1,
                "total": "400.00",
                "total_tax": "0.00",
                "meta_data": [{"key": "ondc_fulfillment_id", "value": fid}],
            }
            for index, fid in enumerate(fulfillments)
        ],
        "meta_data": [{"key": "ondc_transaction_id", "value": transaction_id}],
    }


@pytest.fixture
def sandbox() -> SandboxBackend:
    return SandboxBackend()


@pytest.fixture
def callbacks() -> CallbackRecorder:
    return CallbackRecorder()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.0, backoff_multiplier=2.0)


@pytest.fixture
def dispatcher(callbacks, fast_policy, sleeps) -> CallbackDispatcher:
    return CallbackDispatcher(
        policy=fast_policy,
        timeout=1.0,
        transport=httpx.MockTransport(callbacks.handler),
        sleep=sleeps,
    )


@pytest.fixture
def make_context():
    return build_context


@pytest.fixture
def make_order():
    return sample_order
