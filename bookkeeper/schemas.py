# bookkeeper/schemas.py
# Request validation schemas (Pydantic)

import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

PaymentMethod = Literal["bank_transfer", "check", "cash", "credit_card"]
IncomeStatus = Literal["received", "pending", "overdue"]
ExpenseStatus = Literal["paid", "pending", "overdue"]


class RequestModel(BaseModel):
    """Accepts both camelCase aliases and snake_case field names."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

# --- Auth ---
class RegisterRequest(RequestModel):
    # Plain strings so that register_user reports every field problem at once
    email: str = ""
    password: str = ""
    company_name: str = Field("", alias="companyName")
    name: str = ""
    phone: Optional[str] = None


class LoginRequest(RequestModel):
    email: str = ""
    password: str = ""

# --- Ledgers ---
class LedgerEntryBase(RequestModel):
    """Fields shared by income and expense rows."""
    date: datetime.date
    description: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)
    tax_rate: float = Field(5, ge=0, le=100, alias="taxRate")
    payment_method: PaymentMethod = Field("bank_transfer", alias="paymentMethod")
    notes: Optional[str] = None


class IncomeCreate(LedgerEntryBase):
    customer: str = Field(..., min_length=1)
    status: IncomeStatus = "pending"


class ExpenseCreate(LedgerEntryBase):
    vendor: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    status: ExpenseStatus = "pending"
    receipt_path: Optional[str] = Field(None, alias="receiptPath")

# --- Budget ---
class BudgetCreate(RequestModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    budget_type: Literal["monthly", "yearly"] = "monthly"
    amount: float = Field(..., gt=0)
    period: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    description: Optional[str] = None


class BudgetUpdate(BudgetCreate):
    pass


class ExecutionRefresh(RequestModel):
    period: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")

# --- Tax ---
class AmountItem(RequestModel):
    description: Optional[str] = None
    amount: float = Field(0, ge=0)


class BusinessTaxRequest(RequestModel):
    monthly_revenue: float = Field(..., ge=0, alias="monthlyRevenue")
    exemptions: List[AmountItem] = []
    deductions: List[AmountItem] = []


class IncomeTaxRequest(RequestModel):
    annual_revenue: float = Field(..., ge=0, alias="annualRevenue")
    expenses: List[AmountItem] = []
    depreciation: float = Field(0, ge=0)

# --- Settings ---
class CompanyInfoUpdate(RequestModel):
    company_name: str = Field(..., min_length=1, alias="companyName")
    tax_id: Optional[str] = Field(None, alias="taxId")
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    contact_person: Optional[str] = Field(None, alias="contactPerson")
    business_type: Optional[str] = Field(None, alias="businessType")
    established_date: Optional[str] = Field(None, alias="establishedDate")

    @field_validator("tax_id")
    @classmethod
    def tax_id_is_eight_digits(cls, value):
        if value and not (len(value) == 8 and value.isdigit()):
            raise ValueError("Tax ID must be 8 digits")
        return value or None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        return value or None


class SettingValue(RequestModel):
    value: Any = None
    type: Literal["string", "number", "boolean", "json"] = "string"
    description: Optional[str] = None


class SystemSettingsUpdate(RequestModel):
    settings: Dict[str, SettingValue]


class ImportDataRequest(RequestModel):
    # Accepts an export document as is; unknown keys such as exportInfo are ignored
    data: Dict[str, Any]
    overwrite: bool = False


class RestoreRequest(RequestModel):
    filename: str = Field(..., min_length=1)

# --- Assistant ---
class ClassifyRequest(RequestModel):
    description: str = Field(..., min_length=1)
    amount: Optional[float] = None
    vendor: Optional[str] = None
    type: Literal["income", "expense"] = "expense"


class ChatRequest(RequestModel):
    message: str = Field(..., min_length=1)


class SmartReportRequest(RequestModel):
    report_type: Literal["business_insights", "cash_flow_analysis", "profitability_report"] = Field(
        "business_insights", alias="reportType"
    )
    date_range: Literal["this_month", "last_month", "this_quarter"] = Field(
        "this_month", alias="dateRange"
    )


class ScanReceiptRequest(RequestModel):
    image_data: str = Field(..., min_length=1, alias="imageData")
    receipt_type: Optional[str] = Field(None, alias="receiptType")
    filename: Optional[str] = None


class BatchScanRequest(RequestModel):
    receipts: List[ScanReceiptRequest] = Field(..., min_length=1, max_length=10)


class SmartBackupRequest(RequestModel):
    include_settings: bool = Field(True, alias="includeSettings")
    note: Optional[str] = None


class VerifyBackupRequest(RequestModel):
    backup_id: Optional[str] = Field(None, alias="backupId")
    backup_data: Optional[Dict[str, Any]] = Field(None, alias="backupData")
