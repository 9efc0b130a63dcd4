"""
ZIMMR Backend — Invoice & Quote Route Handlers
===============================================

What:  Invoices and quotes, their PDFs, delivery and quote conversion.
Who:   Craftsmen; all rows are scoped to the caller.

Delivery:
    - POST /invoices/{id}/send is an explicit user action: the PDF is
      rendered, stored and emailed within the request, and a mail failure
      is returned as 503.
    - Invoices issued from an appointment (POST /invoices with an
      appointment, POST /invoices/appointments/{id}/complete) are emailed
      in the background after commit; failures there are only logged.

Caching:
    GET /invoices/{id}/pdf is rendered on every call and sent with
    Cache-Control: no-store, since status and notes can change.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from zimmr.database import get_db_session
from zimmr.dependencies import require_craftsman
from zimmr.schemas.common import ErrorResponse, MessageResponse
from zimmr.schemas.invoice import (
    CompleteAndInvoiceRequest,
    InvoiceCreate,
    InvoiceDetail,
    InvoiceResponse,
    InvoiceUpdate,
    SendInvoiceResponse,
)
from zimmr.security import TokenUser
from zimmr.services.invoice_service import invoice_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])

_ERRORS = {
    403: {"description": "Invoice belongs to another craftsman", "model": ErrorResponse},
    404: {"description": "Invoice not found", "model": ErrorResponse},
}


@router.get("", response_model=List[InvoiceResponse], summary="List invoices and quotes")
async def list_invoices(
    response: Response,
    doc_type: Optional[str] = Query(default=None, alias="type", description="invoice or quote"),
    invoice_status: Optional[str] = Query(default=None, alias="status"),
    customer_id: Optional[int] = Query(default=None),
    overdue: bool = Query(default=False, description="Only pending invoices past their due date"),
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> List[InvoiceResponse]:
    invoices = await invoice_service.list_invoices(
        db,
        user,
        doc_type=doc_type,
        status=invoice_status,
        customer_id=customer_id,
        overdue=overdue,
    )
    response.headers["X-Total-Count"] = str(len(invoices))
    return invoices


@router.get(
    "/{invoice_id}",
    response_model=InvoiceDetail,
    responses=_ERRORS,
    summary="Get an invoice with items and parties",
)
async def get_invoice(
    invoice_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> InvoiceDetail:
    return await invoice_service.get_invoice(db, invoice_id, user)


@router.post(
    "",
    response_model=InvoiceDetail,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Invalid items or appointment state", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Create an invoice or quote",
)
async def create_invoice(
    body: InvoiceCreate,
    background_tasks: BackgroundTasks,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> InvoiceDetail:
    """
    Create an invoice or quote.

    Numbering: INV-YYYYMM-<craftsman>-<seq> for invoices, ANG-... for
    quotes, where seq counts the craftsman's documents of that type in the
    current year.
    """
    invoice = await invoice_service.create_invoice(db, body, user)
    if invoice.type == "invoice" and invoice.appointment_id is not None:
        background_tasks.add_task(invoice_service.deliver_in_background, invoice)
    return invoice


@router.put(
    "/{invoice_id}",
    response_model=InvoiceDetail,
    responses={400: {"description": "No fields to update", "model": ErrorResponse}, **_ERRORS},
    summary="Update status, notes, due date or payment link",
)
async def update_invoice(
    invoice_id: int,
    body: InvoiceUpdate,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> InvoiceDetail:
    return await invoice_service.update_invoice(db, invoice_id, body, user)


@router.delete(
    "/{invoice_id}",
    response_model=MessageResponse,
    responses=_ERRORS,
    summary="Delete an invoice and its items",
)
async def delete_invoice(
    invoice_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await invoice_service.delete_invoice(db, invoice_id, user)
    return MessageResponse(message="Invoice deleted successfully")


# ══════════════════════════════════════════════════════════════════════════
# Documents
# ══════════════════════════════════════════════════════════════════════════


@router.get(
    "/{invoice_id}/pdf",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "The rendered PDF"},
        500: {"description": "PDF generation failed", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Download the invoice PDF",
)
async def download_pdf(
    invoice_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    invoice = await invoice_service.get_invoice(db, invoice_id, user)
    pdf_bytes, filename = await invoice_service.render_document(invoice)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )


@router.post(
    "/{invoice_id}/send",
    response_model=SendInvoiceResponse,
    responses={
        400: {"description": "Customer has no email address", "model": ErrorResponse},
        503: {"description": "Mail transport unavailable", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Email the invoice PDF to the customer",
)
async def send_invoice(
    invoice_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> SendInvoiceResponse:
    return await invoice_service.send_invoice(db, invoice_id, user)


@router.post(
    "/{invoice_id}/convert",
    response_model=InvoiceDetail,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Not a quote, or already converted", "model": ErrorResponse},
        **_ERRORS,
    },
    summary="Convert a quote into an invoice",
)
async def convert_quote(
    invoice_id: int,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> InvoiceDetail:
    return await invoice_service.convert_quote(db, invoice_id, user)


@router.post(
    "/appointments/{appointment_id}/complete",
    response_model=InvoiceDetail,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Appointment already completed or nothing to bill", "model": ErrorResponse},
        403: {"description": "Appointment belongs to another craftsman", "model": ErrorResponse},
        404: {"description": "Appointment not found", "model": ErrorResponse},
    },
    summary="Complete an appointment and issue its invoice",
)
async def complete_and_invoice(
    appointment_id: int,
    body: CompleteAndInvoiceRequest,
    background_tasks: BackgroundTasks,
    user: TokenUser = Depends(require_craftsman),
    db: AsyncSession = Depends(get_db_session),
) -> InvoiceDetail:
    """
    One-step completion: the appointment is completed and invoiced in one
    transaction, then the PDF is emailed to the customer in the background.
    """
    invoice = await invoice_service.complete_appointment_and_invoice(db, appointment_id, body, user)
    background_tasks.add_task(invoice_service.deliver_in_background, invoice)
    return invoice
