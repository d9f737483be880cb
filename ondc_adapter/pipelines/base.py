"""
Action Pipeline
Shared validate -> process -> callback state machine behind every ONDC action
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from ondc_adapter.config import settings
from ondc_adapter.commerce.interface import CommercePlatform
from ondc_adapter.core.callbacks import CallbackDispatcher, CallbackResult
from ondc_adapter.core.errors import CompensationError, OrderValidationError, is_transient
from ondc_adapter.core.retry import RetryPolicy, run_with_retry
from ondc_adapter.protocol.schemas import ProtocolRequest

logger = logging.getLogger(__name__)

# Seller-side reason recorded when an order is rolled back after on_confirm was not delivered
COMPENSATION_REASON_CODE = "998"


class PipelineState(str, Enum):
    RECEIVED = "Received"
    ACKNOWLEDGED = "Acknowledged"
    VALIDATING = "Validating"
    PROCESSING = "Processing"
    AWAITING_CALLBACK = "AwaitingCallback"
    DELIVERED = "Delivered"
    COMPENSATED_CANCEL = "CompensatedCancel"
    ABANDONED = "Abandoned"


@dataclass
class ValidationOutcome:
    """Result of an action's precondition check"""
    valid: bool
    reason: Optional[str] = None
    error_code: Optional[str] = None
    final_failure: bool = False
    order: Optional[Dict] = None

    @classmethod
    def ok(cls, order: Optional[Dict] = None) -> "ValidationOutcome":
        return cls(valid=True, order=order)

    @classmethod
    def reject(cls, reason: str, error_code: str, final: bool = True) -> "ValidationOutcome":
        return cls(valid=False, reason=reason, error_code=error_code, final_failure=final)


@dataclass
class PipelineResult:
    state: PipelineState
    history: List[PipelineState] = field(default_factory=list)
    message: Optional[Dict] = None
    callback: Optional[CallbackResult] = None
    error: Optional[str] = None


async def mark_cancelled(platform: CommercePlatform, order_id: str, reason_code: str, description: str) -> Dict:
    """Cancel an order and record why; used by compensation and fallbacks"""
    return await platform.update_order(order_id, {
        "status": "cancelled",
        "meta_data": [
            {"key": "ondc_state", "value": "Cancelled"},
            {"key": "ondc_cancellation_reason", "value": reason_code},
            {"key": "ondc_cancellation_description", "value": description},
            {"key": "ondc_updated_at", "value": datetime.now(timezone.utc).isoformat()},
        ],
    })


class ActionPipeline(ABC):
    """
    Base pipeline for one ONDC action

    Subclasses implement `process` and, where needed, `validate`,
    `is_retryable`, `fallback`, `compensate` and `on_delivered`. The base
    class owns retries, state transitions and the guarantee that nothing
    raised here reaches the transport layer.
    """

    action: str = ""
    # Whether an undelivered callback leaves a platform commitment to roll back
    compensates: bool = False

    def __init__(
        self,
        platform: CommercePlatform,
        dispatcher: CallbackDispatcher,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.platform = platform
        self.dispatcher = dispatcher
        self.policy = policy or RetryPolicy.for_platform()
        self.sleep = sleep

    def is_retryable(self, error: BaseException) -> bool:
        """Transport failures and non-final validation failures are retried"""
        if isinstance(error, OrderValidationError):
            return not error.outcome.final_failure
        return is_transient(error)

    async def validate(self, request: ProtocolRequest) -> ValidationOutcome:
        return ValidationOutcome.ok()

    @abstractmethod
    async def process(self, request: ProtocolRequest, outcome: ValidationOutcome) -> Dict:
        """Perform the platform read/mutation and return the callback message body"""

    async def fallback(self, request: ProtocolRequest, outcome: Optional[ValidationOutcome],
                       error: BaseException) -> None:
        """Best-effort mutation after retries are exhausted; none by default"""

    async def compensate(self, request: ProtocolRequest, message: Dict) -> None:
        raise NotImplementedError(f"{self.action} defines no compensation")

    async def on_delivered(self, request: ProtocolRequest, message: Dict) -> None:
        """Finalize platform state once the buyer app has the callback"""

    def build_callback(self, request: ProtocolRequest, message: Dict) -> Dict:
        return {
            "context": request.context.for_callback(self.action, settings.BPP_ID, settings.BPP_URI),
            "message": message,
        }

    async def _retry(self, operation, description: str):
        return await run_with_retry(
            operation,
            self.policy,
            self.is_retryable,
            sleep=self.sleep,
            description=description,
        )

    async def _validated(self, request: ProtocolRequest) -> ValidationOutcome:
        outcome = await self.validate(request)
        if not outcome.valid:
            raise OrderValidationError(outcome)
        return outcome

    async def _best_effort(self, step: str, transaction_id: str, operation) -> bool:
        """Run a fallback/compensation once; failures are logged, never raised"""
        try:
            await operation()
            return True
        except Exception as e:
            error = CompensationError(f"{self.action} {step} failed: {e}")
            logger.error(f"[{transaction_id}] {error}")
            return False

    async def run(self, request: ProtocolRequest) -> PipelineResult:
        """
        Drive one request to a terminal state

        Returns:
            PipelineResult whose state is Delivered, CompensatedCancel or Abandoned
        """
        transaction_id = request.context.transaction_id
        result = PipelineResult(
            state=PipelineState.ACKNOWLEDGED,
            history=[PipelineState.RECEIVED, PipelineState.ACKNOWLEDGED],
        )

        def enter(state: PipelineState) -> None:
            result.state = state
            result.history.append(state)
            logger.debug(f"[{transaction_id}] {self.action} -> {state.value}")

        def abandon(error: BaseException) -> PipelineResult:
            result.error = str(error)
            enter(PipelineState.ABANDONED)
            logger.warning(f"[{transaction_id}] {self.action} abandoned: {error}")
            return result

        try:
            enter(PipelineState.VALIDATING)
            try:
                outcome = await self._retry(lambda: self._validated(request), f"[{transaction_id}] {self.action} validation")
            except OrderValidationError as e:
                if not e.outcome.final_failure:
                    await self._best_effort("fallback", transaction_id,
                                            lambda: self.fallback(request, e.outcome, e))
                return abandon(e)
            except Exception as e:
                await self._best_effort("fallback", transaction_id, lambda: self.fallback(request, None, e))
                return abandon(e)

            enter(PipelineState.PROCESSING)
            try:
                message = await self._retry(lambda: self.process(request, outcome), f"[{transaction_id}] {self.action} processing")
            except Exception as e:
                await self._best_effort("fallback", transaction_id, lambda: self.fallback(request, outcome, e))
                return abandon(e)
            result.message = message

            enter(PipelineState.AWAITING_CALLBACK)
            payload = self.build_callback(request, message)
            result.callback = await self.dispatcher.deliver(payload, request.context.bap_uri, self.action)

            if result.callback.success:
                try:
                    await self._retry(lambda: self.on_delivered(request, message), f"[{transaction_id}] {self.action} finalize")
                except Exception as e:
                    logger.error(f"[{transaction_id}] {self.action} delivered but finalizing platform state failed: {e}")
                enter(PipelineState.DELIVERED)
                logger.info(f"[{transaction_id}] {self.action} completed")
                return result

            if not self.compensates:
                return abandon(RuntimeError(f"on_{self.action} undelivered: {result.callback.last_error}"))

            logger.warning(f"[{transaction_id}] on_{self.action} undelivered; compensating")
            if await self._best_effort("compensation", transaction_id, lambda: self.compensate(request, message)):
                result.error = result.callback.last_error
                enter(PipelineState.COMPENSATED_CANCEL)
                return result
            return abandon(CompensationError(f"on_{self.action} undelivered and compensation failed"))

        except Exception as e:
            logger.exception(f"[{transaction_id}] Unexpected error in {self.action} pipeline")
            return abandon(e)
