"""Payment API routes."""

from __future__ import annotations

import logging
import time
from typing import Union
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Path, status
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram

from ...application.payments.dtos import (
    AutoVerifyRequestDTO,
    AutoVerifyResponseDTO,
    CreatePaymentDTO,
    CreatePaymentResponseDTO,
    PaymentResponseDTO,
    VerifyPaymentRequestDTO,
    VerifyPaymentResponseDTO,
)
from ...application.payments.use_cases.payment_creation import PaymentCreationService
from ...application.payments.use_cases.reconciliation import (
    PaymentReconciliationService,
)
from ...domain.errors import (
    FulfillmentFailed,
    FulfillmentInProgress,
    NotFound,
    PaymentError,
    RateLimited,
)
from ..dependencies import get_payment_creation_service, get_reconciliation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


verification_requests_total = Counter(
    "verification_requests_total",
    "Total manual payment verification requests processed",
    ["status"],
)

verification_request_duration_seconds = Histogram(
    "verification_request_duration_seconds",
    "Wall time to process a manual payment verification request",
    ["status"],
)

auto_verify_requests_total = Counter(
    "auto_verify_requests_total",
    "Total auto-verify polling requests processed",
    ["status"],
)

auto_verify_request_duration_seconds = Histogram(
    "auto_verify_request_duration_seconds",
    "Wall time to process an auto-verify polling request",
    ["status"],
)


def _error_status(error: PaymentError) -> int:
    if isinstance(error, NotFound):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, RateLimited):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(error, FulfillmentInProgress):
        return status.HTTP_409_CONFLICT
    if isinstance(error, FulfillmentFailed):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_400_BAD_REQUEST


def _error_response(error: PaymentError) -> JSONResponse:
    content = {"error": error.message, "code": error.code}
    if error.status:
        content["status"] = error.status
    return JSONResponse(status_code=_error_status(error), content=content)


@router.post(
    "",
    response_model=CreatePaymentResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment(
    payment_data: CreatePaymentDTO,
    payment_creation_service: PaymentCreationService = Depends(
        get_payment_creation_service
    ),
) -> CreatePaymentResponseDTO:
    """Open a payment intent and return where to send the funds."""
    try:
        return await payment_creation_service.create_payment(payment_data)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/auto-verify", response_model=AutoVerifyResponseDTO)
async def auto_verify_payment(
    payload: AutoVerifyRequestDTO,
    background_tasks: BackgroundTasks,
    reconciliation_service: PaymentReconciliationService = Depends(
        get_reconciliation_service
    ),
) -> AutoVerifyResponseDTO:
    """Poll the ledger for a transfer matching the payment.

    Always answers 200; ``success`` tells the client whether to keep polling.
    """
    start_time = time.perf_counter()
    if not payload.payment_id:
        auto_verify_requests_total.labels(status="not_found").inc()
        elapsed = time.perf_counter() - start_time
        auto_verify_request_duration_seconds.labels(status="not_found").observe(elapsed)
        return AutoVerifyResponseDTO(
            success=False, message="Payment ID is required", code=NotFound.code
        )

    background_tasks.add_task(
        reconciliation_service.record_last_checked, payload.payment_id
    )
    try:
        result = await reconciliation_service.auto_verify(payload.payment_id)
    except Exception as e:
        logger.exception(
            "Auto-verify failed", extra={"payment_id": payload.payment_id}
        )
        auto_verify_requests_total.labels(status="server_error").inc()
        elapsed = time.perf_counter() - start_time
        auto_verify_request_duration_seconds.labels(status="server_error").observe(
            elapsed
        )
        return AutoVerifyResponseDTO(
            success=False,
            message=f"Failed to verify payment: {str(e)}",
            code="INTERNAL_ERROR",
        )

    outcome = "verified" if result.success else (result.code or "no_match").lower()
    auto_verify_requests_total.labels(status=outcome).inc()
    elapsed = time.perf_counter() - start_time
    auto_verify_request_duration_seconds.labels(status=outcome).observe(elapsed)
    return result


@router.get("/{payment_id}", response_model=PaymentResponseDTO)
async def get_payment(
    payment_id: UUID = Path(..., description="Payment intent identifier"),
    reconciliation_service: PaymentReconciliationService = Depends(
        get_reconciliation_service
    ),
) -> Union[PaymentResponseDTO, JSONResponse]:
    """Get a payment intent. Intents past their deadline are reported as EXPIRED."""
    try:
        return await reconciliation_service.get_payment(payment_id)
    except PaymentError as e:
        return _error_response(e)


@router.post("/{payment_id}", response_model=VerifyPaymentResponseDTO)
async def verify_payment(
    payload: VerifyPaymentRequestDTO,
    payment_id: UUID = Path(..., description="Payment intent identifier"),
    reconciliation_service: PaymentReconciliationService = Depends(
        get_reconciliation_service
    ),
) -> Union[VerifyPaymentResponseDTO, JSONResponse]:
    """Verify a user-submitted transaction signature and fulfil the payment."""
    start_time = time.perf_counter()
    try:
        result = await reconciliation_service.verify_by_signature(
            payment_id, payload.tx_signature
        )
        verification_requests_total.labels(status="success").inc()
        elapsed = time.perf_counter() - start_time
        verification_request_duration_seconds.labels(status="success").observe(elapsed)
        return result
    except PaymentError as e:
        outcome = "server_error" if isinstance(e, FulfillmentFailed) else "client_error"
        verification_requests_total.labels(status=outcome).inc()
        elapsed = time.perf_counter() - start_time
        verification_request_duration_seconds.labels(status=outcome).observe(elapsed)
        return _error_response(e)
    except Exception as e:
        logger.exception("Manual verification failed", extra={"payment_id": str(payment_id)})
        verification_requests_total.labels(status="server_error").inc()
        elapsed = time.perf_counter() - start_time
        verification_request_duration_seconds.labels(status="server_error").observe(
            elapsed
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to verify payment: {str(e)}",
        )
