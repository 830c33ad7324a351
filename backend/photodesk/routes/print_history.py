"""
PhotoDesk Backend: Print History Routes
=========================================

What:  Records certificate prints and lists them, overall or per
       photographer.
"""

from fastapi import APIRouter

from photodesk.schemas.common import ErrorResponse
from photodesk.schemas.records import (
    PrintCertificateRequest,
    PrintCertificateResponse,
    PrintHistoryResponse,
)
from photodesk.services.records_service import records_service

router = APIRouter(prefix="/api", tags=["Print History"])


@router.post(
    "/print-certificate",
    response_model=PrintCertificateResponse,
    responses={400: {"description": "Photographer id or name missing", "model": ErrorResponse}},
    summary="Record a certificate print",
)
async def print_certificate(body: PrintCertificateRequest) -> PrintCertificateResponse:
    record = await records_service.record_print(body.photographer_id, body.photographer_name)
    return PrintCertificateResponse(message="Print record created successfully", record=record)


@router.get("/print-history", response_model=PrintHistoryResponse)
async def print_history() -> PrintHistoryResponse:
    history = await records_service.print_history()
    return PrintHistoryResponse(count=len(history), history=history)


@router.get("/print-history/{photographer_id}", response_model=PrintHistoryResponse)
async def photographer_print_history(photographer_id: str) -> PrintHistoryResponse:
    history = await records_service.print_history(photographer_id)
    return PrintHistoryResponse(count=len(history), history=history)
