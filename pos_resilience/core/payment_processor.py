"""
Multi-gateway payment dispatcher with retry and circuit breaking.

Orchestrates one charge:
1. Validate input
2. Release gateways whose circuit cool-down elapsed
3. Build candidates (online, ascending priority)
4. Per candidate: skip open circuits, retry with exponential backoff
5. Return the first approval or one aggregate failure
"""
import asyncio
import dataclasses
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.stop import stop_base

from pos_resilience.config import Settings, get_settings
from pos_resilience.core.exceptions import (
    GatewayChargeError,
    GatewayConfigurationError,
    GatewayError,
    PaymentValidationError,
)
from pos_resilience.core.gateways import (
    ChargeOutcome,
    Gateway,
    GatewayAdapter,
    GatewayFailureRecord,
    GatewayStatus,
    GatewayTier,
    PaymentMethod,
    PaymentRequest,
    PaymentResponse,
)
from pos_resilience.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

NO_GATEWAYS_MESSAGE = "No payment gateways available"


def _is_retryable_charge_error(exc: BaseException) -> bool:
    return isinstance(exc, GatewayChargeError) and exc.retryable


class stop_when_circuit_open(stop_base):
    """Stop retrying a gateway as soon as its circuit trips."""

    def __init__(self, processor: "PaymentProcessor", gateway_id: str):
        self.processor = processor
        self.gateway_id = gateway_id

    def __call__(self, retry_state: RetryCallState) -> bool:
        return self.processor._circuit_tripped(self.gateway_id)


class PaymentProcessor:
    """
    Payment dispatcher owned by one terminal.

    Holds the gateway table and the per-gateway failure records. Both are
    mutated only by this instance; the only external write path is
    `set_gateway_status`.
    """

    def __init__(
        self,
        gateways: Iterable[Gateway],
        adapters: Mapping[str, GatewayAdapter],
        failure_threshold: int = 3,
        circuit_cooldown_seconds: float = 300.0,
        retry_base_delay: float = 1.0,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize payment processor.

        Args:
            gateways: Configured gateways, in configuration order
            adapters: Adapter per gateway id
            failure_threshold: Consecutive failures that open a circuit
            circuit_cooldown_seconds: How long an open circuit stays open
            retry_base_delay: Base delay for exponential backoff (seconds)
            clock: Wall clock used for failure timestamps
            sleep: Coroutine used for backoff waits

        Raises:
            GatewayConfigurationError: If a gateway has no adapter
        """
        self._gateways: List[Gateway] = list(gateways)
        missing = [g.id for g in self._gateways if g.id not in adapters]
        if missing:
            raise GatewayConfigurationError(f"No adapter configured for gateways: {missing}")

        self._adapters = dict(adapters)
        self._failures: Dict[str, GatewayFailureRecord] = {}
        self.failure_threshold = failure_threshold
        self.circuit_cooldown_seconds = circuit_cooldown_seconds
        self.retry_base_delay = retry_base_delay
        self._clock = clock
        self._sleep = sleep

        logger.info(
            "payment_processor_initialized",
            gateways=[g.id for g in self._gateways],
            failure_threshold=failure_threshold,
            circuit_cooldown_seconds=circuit_cooldown_seconds,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        adapters: Optional[Mapping[str, GatewayAdapter]] = None,
    ) -> "PaymentProcessor":
        """Build a processor from settings, creating adapters when none are given."""
        settings = settings or get_settings()
        if adapters is None:
            from pos_resilience.integrations import build_adapters

            adapters = build_adapters(settings)

        return cls(
            gateways=[Gateway.from_config(config) for config in settings.payment_gateways],
            adapters=adapters,
            failure_threshold=settings.payment_failure_threshold,
            circuit_cooldown_seconds=settings.payment_circuit_cooldown_seconds,
            retry_base_delay=settings.payment_retry_base_delay,
        )

    @staticmethod
    def _validate_payment_request(request: PaymentRequest) -> None:
        """
        Validate payment request parameters.

        Args:
            request: Payment request

        Raises:
            PaymentValidationError: If validation fails
        """
        try:
            amount = Decimal(request.amount)
        except (ArithmeticError, TypeError, ValueError):
            raise PaymentValidationError("Amount must be a decimal number")

        if not amount.is_finite() or amount <= 0:
            raise PaymentValidationError("Amount must be positive")

        try:
            PaymentMethod(request.method)
        except ValueError:
            raise PaymentValidationError(f"Unsupported payment method: {request.method}")

    def _find_gateway(self, gateway_id: str) -> Optional[Gateway]:
        return next((g for g in self._gateways if g.id == gateway_id), None)

    def _update_gateway_status(self, gateway_id: str, status: GatewayStatus) -> None:
        gateway = self._find_gateway(gateway_id)
        if gateway is not None and gateway.status != status:
            gateway.status = status
            logger.info("gateway_status_updated", gateway=gateway_id, status=status.value)

    def _circuit_tripped(self, gateway_id: str) -> bool:
        failure = self._failures.get(gateway_id)
        return failure is not None and failure.count >= self.failure_threshold

    def _cooldown_elapsed(self, gateway_id: str) -> bool:
        failure = self._failures[gateway_id]
        return self._clock() - failure.last_failure > self.circuit_cooldown_seconds

    def _is_circuit_open(self, gateway_id: str) -> bool:
        """Check whether a gateway's circuit is open, without changing state."""
        return self._circuit_tripped(gateway_id) and not self._cooldown_elapsed(gateway_id)

    def _release_cooled_circuit(self, gateway_id: str) -> bool:
        """
        Move an open circuit whose cool-down elapsed to half-open.

        The count is cleared; a gateway parked in error by the breaker goes
        back online, while an operator override is left alone.

        Returns:
            bool: True if the circuit is still open
        """
        if not self._circuit_tripped(gateway_id):
            return False
        if not self._cooldown_elapsed(gateway_id):
            return True

        self._failures[gateway_id] = GatewayFailureRecord(half_open=True)
        gateway = self._find_gateway(gateway_id)
        if gateway is not None and gateway.status == GatewayStatus.ERROR:
            self._update_gateway_status(gateway_id, GatewayStatus.ONLINE)
        metrics.set_circuit_state(gateway_id, "half_open")
        logger.info("gateway_circuit_half_open", gateway=gateway_id)
        return False

    def _record_failure(self, gateway_id: str) -> None:
        failure = self._failures.setdefault(gateway_id, GatewayFailureRecord())
        failure.count += 1
        failure.last_failure = self._clock()
        if failure.half_open:
            failure.count = max(failure.count, self.failure_threshold)
            failure.half_open = False

        if failure.count >= self.failure_threshold:
            logger.warning(
                "gateway_circuit_opened",
                gateway=gateway_id,
                failure_count=failure.count,
            )
            self._update_gateway_status(gateway_id, GatewayStatus.ERROR)
            metrics.set_circuit_state(gateway_id, "open")

    def _clear_failures(self, gateway_id: str) -> None:
        if self._failures.pop(gateway_id, None) is not None:
            metrics.set_circuit_state(gateway_id, "closed")

    def _get_available_gateways(self) -> List[Gateway]:
        """Get online gateways sorted by priority (stable for ties)."""
        for gateway in self._gateways:
            if gateway.status == GatewayStatus.ERROR:
                self._release_cooled_circuit(gateway.id)

        return sorted(
            (g for g in self._gateways if g.status == GatewayStatus.ONLINE),
            key=lambda g: g.priority,
        )

    async def _attempt_charge(
        self, gateway: Gateway, request: PaymentRequest, attempt_number: int
    ) -> ChargeOutcome:
        """
        Attempt one charge, bounded by the gateway timeout.

        Raises:
            GatewayChargeError: If the attempt was declined, timed out or failed
        """
        adapter = self._adapters[gateway.id]

        logger.info(
            "gateway_charge_attempt",
            gateway=gateway.id,
            attempt=attempt_number,
            request_id=request.request_id,
        )

        retryable = True
        try:
            outcome = await asyncio.wait_for(
                adapter.attempt_charge(gateway, request),
                timeout=gateway.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error_message, result = "Transaction timeout", "timeout"
        except GatewayError as e:
            error_message, result = str(e), "error"
            retryable = e.retryable
        except Exception as e:
            logger.error(
                "gateway_adapter_unexpected_error",
                gateway=gateway.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            error_message, result = str(e) or type(e).__name__, "error"
        else:
            if outcome.success:
                metrics.record_gateway_attempt(gateway.id, "approved")
                return outcome
            error_message, result = outcome.error_message or "Payment declined", "declined"

        metrics.record_gateway_attempt(gateway.id, result)
        self._record_failure(gateway.id)

        logger.warning(
            "gateway_charge_failed",
            gateway=gateway.id,
            attempt=attempt_number,
            outcome=result,
            error=error_message,
            retryable=retryable,
        )

        raise GatewayChargeError(error_message, retryable=retryable)

    async def process_payment(self, request: PaymentRequest) -> PaymentResponse:
        """
        Process a payment with automatic failover and retry logic.

        Args:
            request: Payment request

        Returns:
            PaymentResponse: Approval from the first gateway that accepted the
            charge, or one aggregate failure

        Raises:
            PaymentValidationError: If input validation fails
        """
        self._validate_payment_request(request)

        start_time = time.monotonic()
        method = PaymentMethod(request.method).value

        def elapsed_ms() -> float:
            return round((time.monotonic() - start_time) * 1000, 3)

        candidates = self._get_available_gateways()

        logger.info(
            "payment_dispatch_started",
            request_id=request.request_id,
            amount=str(request.amount),
            method=method,
            candidates=[g.id for g in candidates],
        )

        if not candidates:
            logger.warning("payment_no_gateways_available", request_id=request.request_id)
            metrics.record_payment_request("unavailable", method, time.monotonic() - start_time)
            return PaymentResponse(
                success=False,
                error_message=NO_GATEWAYS_MESSAGE,
                processing_time_ms=elapsed_ms(),
            )

        last_error = ""
        total_retries = 0
        attempted = False

        for gateway in candidates:
            if self._release_cooled_circuit(gateway.id):
                logger.info("gateway_circuit_open_skipped", gateway=gateway.id)
                continue

            attempted = True
            outcome: Optional[ChargeOutcome] = None

            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(gateway.max_retries + 1)
                    | stop_when_circuit_open(self, gateway.id),
                    wait=wait_exponential(multiplier=self.retry_base_delay, min=0),
                    retry=retry_if_exception(_is_retryable_charge_error),
                    sleep=self._sleep,
                    reraise=True,
                ):
                    with attempt:
                        try:
                            outcome = await self._attempt_charge(
                                gateway, request, attempt.retry_state.attempt_number
                            )
                        except GatewayChargeError:
                            total_retries += 1
                            raise

            except GatewayChargeError as e:
                last_error = str(e)
                continue

            self._clear_failures(gateway.id)
            fallback_used = gateway.tier != GatewayTier.PRIMARY

            logger.info(
                "payment_approved",
                request_id=request.request_id,
                gateway=gateway.id,
                transaction_id=outcome.transaction_id,
                retry_count=total_retries,
                fallback_used=fallback_used,
            )
            metrics.record_payment_request("approved", method, time.monotonic() - start_time)
            if fallback_used:
                metrics.record_fallback(gateway.id)

            return PaymentResponse(
                success=True,
                transaction_id=outcome.transaction_id,
                reference_number=outcome.reference_number,
                gateway=gateway.id,
                processing_time_ms=elapsed_ms(),
                retry_count=total_retries,
                fallback_used=fallback_used,
            )

        if not attempted:
            logger.warning("payment_all_circuits_open", request_id=request.request_id)
            metrics.record_payment_request("unavailable", method, time.monotonic() - start_time)
            return PaymentResponse(
                success=False,
                error_message=NO_GATEWAYS_MESSAGE,
                processing_time_ms=elapsed_ms(),
            )

        logger.error(
            "payment_all_gateways_failed",
            request_id=request.request_id,
            retry_count=total_retries,
            last_error=last_error,
        )
        metrics.record_payment_request("failed", method, time.monotonic() - start_time)

        return PaymentResponse(
            success=False,
            error_message=f"All payment gateways failed. Last error: {last_error}",
            processing_time_ms=elapsed_ms(),
            retry_count=total_retries,
        )

    async def process_multiple_payments(
        self, requests: Iterable[PaymentRequest]
    ) -> List[PaymentResponse]:
        """
        Process split-tender payments one after another.

        A failed piece does not stop the batch and nothing is rolled back;
        the caller decides how to handle partial approval. An invalid piece
        is reported as a failed response rather than raised.
        """
        responses: List[PaymentResponse] = []

        for index, request in enumerate(requests):
            try:
                response = await self.process_payment(request)
            except PaymentValidationError as e:
                response = PaymentResponse(
                    success=False,
                    error_message=str(e),
                    processing_time_ms=0.0,
                )
            responses.append(response)

            if not response.success:
                logger.warning(
                    "split_payment_piece_failed",
                    index=index,
                    error=response.error_message,
                )

        return responses

    async def test_gateway(self, gateway_id: str) -> Dict[str, Any]:
        """
        Test gateway connectivity out of band.

        Args:
            gateway_id: Gateway to probe

        Returns:
            Dict[str, Any]: success, response_time_ms and optional error
        """
        gateway = self._find_gateway(gateway_id)
        if gateway is None:
            return {"success": False, "response_time_ms": 0.0, "error": "Gateway not found"}

        start_time = time.monotonic()
        error: Optional[str] = None

        try:
            outcome = await asyncio.wait_for(
                self._adapters[gateway_id].check_connectivity(gateway),
                timeout=gateway.timeout_seconds,
            )
            success = outcome.success
            error = outcome.error_message
        except asyncio.TimeoutError:
            success, error = False, "Connection timeout"
        except Exception as e:
            success, error = False, str(e) or "Connection failed"

        response_time_ms = round((time.monotonic() - start_time) * 1000, 3)

        if success:
            self._update_gateway_status(gateway_id, GatewayStatus.ONLINE)
            self._clear_failures(gateway_id)
        else:
            self._update_gateway_status(gateway_id, GatewayStatus.ERROR)

        logger.info(
            "gateway_tested",
            gateway=gateway_id,
            success=success,
            response_time_ms=response_time_ms,
            error=error,
        )

        result: Dict[str, Any] = {"success": success, "response_time_ms": response_time_ms}
        if error:
            result["error"] = error
        return result

    def get_gateway_statuses(self) -> List[Gateway]:
        """Get copies of all configured gateways."""
        return [dataclasses.replace(g) for g in self._gateways]

    def get_health_metrics(self) -> Dict[str, Any]:
        """Get per-gateway failure counts and circuit state."""
        gateways = []
        for gateway in self._gateways:
            circuit_open = self._is_circuit_open(gateway.id)
            failure = self._failures.get(gateway.id)
            gateways.append({
                "id": gateway.id,
                "name": gateway.name,
                "status": gateway.status.value,
                "failure_count": failure.count if failure else 0,
                "last_failure": failure.last_failure if failure and failure.count else None,
                "circuit_open": circuit_open,
            })

        return {
            "gateways": gateways,
            "total_failures": sum(f.count for f in self._failures.values()),
        }

    def set_gateway_status(self, gateway_id: str, status: GatewayStatus | str) -> bool:
        """
        Force gateway status (operators and tests).

        Returns:
            bool: False if the gateway is unknown
        """
        gateway = self._find_gateway(gateway_id)
        if gateway is None:
            return False

        status = GatewayStatus(status)
        gateway.status = status
        if status == GatewayStatus.ONLINE:
            self._clear_failures(gateway_id)

        logger.info("gateway_status_overridden", gateway=gateway_id, status=status.value)
        return True

    async def close(self) -> None:
        """Close all adapters."""
        for adapter in set(self._adapters.values()):
            await adapter.close()
