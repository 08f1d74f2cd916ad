# bookkeeper/tax.py
# Business and income tax calculators, filing reminders and reference data

import math
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from . import models, periods

BUSINESS_TAX_RATE = 0.05
INCOME_TAX_RATE = 0.20
WITHHOLDING_TAX_RATE = 0.10
SMALL_BUSINESS_ANNUAL_LIMIT = 80000
INCOME_TAX_EXEMPT_LIMIT = 120000

DISCLAIMER = "Results are for reference only; the tax authority's assessment prevails."

TAX_RATES = [
    {
        "type": "business_tax",
        "name": "營業稅",
        "rate": BUSINESS_TAX_RATE,
        "description": "一般營業稅率 5%",
        "applicable": "年營業額超過 8 萬元",
        "exemptions": ["小規模營業人", "農產品銷售"],
    },
    {
        "type": "income_tax",
        "name": "營利事業所得稅",
        "rate": INCOME_TAX_RATE,
        "description": "營利事業所得稅率 20%",
        "applicable": "年營業額超過 12 萬元",
        "deductions": ["薪資費用", "租金費用", "水電費", "折舊費用"],
    },
    {
        "type": "withholding_tax",
        "name": "扣繳稅款",
        "rate": WITHHOLDING_TAX_RATE,
        "description": "各類所得扣繳率 10%",
        "applicable": "給付薪資、租金、利息等",
        "exceptions": ["小額給付免扣繳"],
    },
]

TAX_RESOURCES = [
    {"category": "official", "name": "財政部稅務入口網", "url": "https://www.etax.nat.gov.tw",
     "description": "官方稅務資訊查詢與申報系統", "icon": "🏛️"},
    {"category": "official", "name": "國稅局各區分局", "url": "https://www.ntbna.gov.tw",
     "description": "各地區國稅局聯絡資訊與服務", "icon": "📞"},
    {"category": "guide", "name": "營業稅申報指南", "url": "https://www.etax.nat.gov.tw/etwmain/etw113w/etw113w01",
     "description": "營業稅申報流程與注意事項", "icon": "📋"},
    {"category": "guide", "name": "營利事業所得稅申報指南", "url": "https://www.etax.nat.gov.tw/etwmain/etw113w/etw113w02",
     "description": "營利事業所得稅申報流程與注意事項", "icon": "📊"},
    {"category": "tool", "name": "稅額試算工具", "url": "https://www.etax.nat.gov.tw/etwmain/etw113w/etw113w03",
     "description": "官方稅額試算與申報工具", "icon": "🧮"},
    {"category": "faq", "name": "常見問題 FAQ", "url": "https://www.etax.nat.gov.tw/etwmain/etw113w/etw113w04",
     "description": "稅務申報常見問題解答", "icon": "❓"},
]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _sum_amounts(items: List[dict]) -> float:
    return sum(item.get("amount") or 0 for item in items if (item.get("amount") or 0) > 0)

# ===== CALCULATORS =====

def calculate_business_tax(monthly_revenue: float, exemptions: List[dict],
                           deductions: List[dict], today: Optional[date] = None) -> dict:
    today = today or date.today()
    annual_revenue = monthly_revenue * 12
    is_small_business = annual_revenue <= SMALL_BUSINESS_ANNUAL_LIMIT
    taxable_revenue = max(0, monthly_revenue - _sum_amounts(exemptions))
    monthly_tax = taxable_revenue * BUSINESS_TAX_RATE

    if is_small_business:
        filing_frequency, filing_deadline, months_ahead = "quarterly", "15th of the following quarter", 3
    else:
        filing_frequency, filing_deadline, months_ahead = "monthly", "15th of the following month", 1
    next_filing = periods.add_months(today.replace(day=15), months_ahead)

    return {
        "monthlyRevenue": monthly_revenue,
        "annualRevenue": annual_revenue,
        "isSmallBusiness": is_small_business,
        "taxableRevenue": taxable_revenue,
        "businessTaxRate": f"{BUSINESS_TAX_RATE * 100:g}%",
        "monthlyTax": round_half_up(monthly_tax),
        "annualTax": round_half_up(monthly_tax * 12),
        "filingFrequency": filing_frequency,
        "filingDeadline": filing_deadline,
        "nextFilingDate": next_filing.isoformat(),
        "exemptions": exemptions,
        "deductions": deductions,
        "calculationDate": datetime.now().isoformat(),
    }


def calculate_income_tax(annual_revenue: float, expenses: List[dict], depreciation: float = 0) -> dict:
    total_expenses = sum(item.get("amount") or 0 for item in expenses) + depreciation
    taxable_income = max(0, annual_revenue - total_expenses)
    is_exempt = annual_revenue <= INCOME_TAX_EXEMPT_LIMIT
    income_tax = 0 if is_exempt else taxable_income * INCOME_TAX_RATE
    effective_rate = income_tax / annual_revenue * 100 if annual_revenue > 0 else 0

    return {
        "annualRevenue": annual_revenue,
        "totalExpenses": total_expenses,
        "depreciation": depreciation,
        "taxableIncome": taxable_income,
        "isExempt": is_exempt,
        "incomeTaxRate": f"{INCOME_TAX_RATE * 100:g}%",
        "incomeTax": round_half_up(income_tax),
        "effectiveTaxRate": round(effective_rate, 2),
        "expenses": expenses,
        "calculationDate": datetime.now().isoformat(),
    }


def record_calculation(db: Session, user_id: str, calculation_type: str,
                       input_data: dict, result_data: dict) -> models.TaxCalculation:
    """Append to the write-once calculation log."""
    record = models.TaxCalculation(
        user_id=user_id,
        calculation_type=calculation_type,
        input_data=input_data,
        result_data=result_data,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record

# ===== REMINDERS =====

def _reminder(kind: str, name: str, deadline: date, today: date, description: str,
              urgent_days: int) -> dict:
    days_until = (deadline - today).days
    if days_until < 0:
        reminder_status = "overdue"
    elif days_until <= urgent_days:
        reminder_status = "urgent"
    else:
        reminder_status = "upcoming"
    return {
        "type": kind,
        "name": name,
        "deadline": deadline.isoformat(),
        "daysUntil": days_until,
        "status": reminder_status,
        "description": description,
        "priority": "high" if days_until <= urgent_days else "medium",
    }


def filing_reminders(today: Optional[date] = None) -> list:
    today = today or date.today()
    reminders = [
        _reminder(
            "business_tax", "營業稅申報",
            periods.add_months(today.replace(day=15), 1), today,
            "每月 15 日前申報上月營業稅", urgent_days=7,
        )
    ]
    if today.month == 5:
        reminders.append(_reminder(
            "income_tax", "營利事業所得稅申報", date(today.year, 5, 31), today,
            "每年 5 月 31 日前申報上年度營利事業所得稅", urgent_days=14,
        ))
    if today.month == 1:
        reminders.append(_reminder(
            "withholding", "扣繳憑單申報", date(today.year, 1, 31), today,
            "每年 1 月 31 日前申報上年度扣繳憑單", urgent_days=14,
        ))
    return reminders
