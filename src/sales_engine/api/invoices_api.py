"""
Invoices API - FastAPI router for invoice generation and status changes.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ..engine.errors import BusinessRuleViolation, ConcurrencyConflict, NotFound
from .schemas import InvoiceCreate, InvoiceResponse, StatusUpdate
from .state import Container, get_container

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/generate", response_model=InvoiceResponse)
async def generate_invoice(req: InvoiceCreate, container: Container = Depends(get_container)):
    """Generate an invoice for a paid order."""
    try:
        invoice = container.invoices.generate_invoice(
            req.order_id,
            due_date=req.due_date,
            notes=req.notes,
            terms_and_conditions=req.terms_and_conditions,
            payment_instructions=req.payment_instructions,
        )
        return InvoiceResponse.from_invoice(invoice)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConcurrencyConflict as e:
        raise HTTPException(status_code=409, detail=e.reason)
    except BusinessRuleViolation as e:
        raise HTTPException(status_code=400, detail=e.reason)


@router.get("", response_model=list[InvoiceResponse])
async def list_invoices(status: Optional[str] = None, container: Container = Depends(get_container)):
    try:
        return [InvoiceResponse.from_invoice(i) for i in container.invoices.list_invoices(status)]
    except BusinessRuleViolation as e:
        raise HTTPException(status_code=400, detail=e.reason)


@router.get("/analytics/overview")
async def get_analytics(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    container: Container = Depends(get_container),
):
    """Invoice totals by status and month."""
    return container.invoices.get_analytics(start_date=start_date, end_date=end_date)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(invoice_id: str, container: Container = Depends(get_container)):
    try:
        return InvoiceResponse.from_invoice(container.invoices.get_invoice(invoice_id))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{invoice_id}/status", response_model=InvoiceResponse)
async def update_status(invoice_id: str, update: StatusUpdate, container: Container = Depends(get_container)):
    """Move an invoice to a new lifecycle status."""
    try:
        invoice = container.invoices.transition_invoice(invoice_id, update.status)
        return InvoiceResponse.from_invoice(invoice)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ConcurrencyConflict as e:
        raise HTTPException(status_code=409, detail=e.reason)
    except BusinessRuleViolation as e:
        raise HTTPException(status_code=400, detail=e.reason)
