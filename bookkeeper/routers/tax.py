# bookkeeper/routers/tax.py
# Tax reference data (public) and per-user tax calculators

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import models, schemas, tax
from ..dependencies import get_current_user, get_db, get_pagination_params
from ..query_builder import paginate

# Mounted without authentication
reference_router = APIRouter()
# Mounted behind authentication
router = APIRouter()

# ===== REFERENCE DATA =====

@reference_router.get("/rates")
def tax_rates():
    return {"success": True, "data": tax.TAX_RATES}


@reference_router.get("/filing-reminders")
def tax_filing_reminders():
    """Upcoming filing deadlines relative to today."""
    return {"success": True, "data": tax.filing_reminders()}


@reference_router.get("/resources")
def tax_resources():
    return {"success": True, "data": tax.TAX_RESOURCES}

# ===== CALCULATORS =====

@router.post("/calculate-business-tax")
def calculate_business_tax(
    payload: schemas.BusinessTaxRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Monthly business tax, filing frequency and next filing date."""
    request_data = payload.model_dump(by_alias=True)
    result = tax.calculate_business_tax(
        payload.monthly_revenue,
        request_data["exemptions"],
        request_data["deductions"],
    )
    tax.record_calculation(db, current_user.id, "business_tax", request_data, result)
    return {"success": True, "data": result, "message": "Business tax calculated",
            "disclaimer": tax.DISCLAIMER}


@router.post("/calculate-income-tax")
def calculate_income_tax(
    payload: schemas.IncomeTaxRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    request_data = payload.model_dump(by_alias=True)
    result = tax.calculate_income_tax(
        payload.annual_revenue, request_data["expenses"], payload.depreciation
    )
    tax.record_calculation(db, current_user.id, "income_tax", request_data, result)
    return {"success": True, "data": result, "message": "Income tax calculated",
            "disclaimer": tax.DISCLAIMER}


@router.get("/calculation-history")
def calculation_history(
    calculation_type: Optional[str] = Query(None, alias="type"),
    pagination: dict = Depends(get_pagination_params),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """The caller's past calculations, newest first."""
    query = db.query(models.TaxCalculation).filter(
        models.TaxCalculation.user_id == current_user.id
    )
    if calculation_type:
        query = query.filter(models.TaxCalculation.calculation_type == calculation_type)
    query = query.order_by(models.TaxCalculation.created_at.desc(), models.TaxCalculation.id.desc())

    rows, page_info = paginate(query, pagination["page"], pagination["limit"])
    history = [
        {
            "id": row.id,
            "type": row.calculation_type,
            "input": row.input_data,
            "result": row.result_data,
            "createdAt": row.created_at.isoformat(),
        }
        for row in rows
    ]
    return {"success": True, "data": history, "pagination": page_info}
