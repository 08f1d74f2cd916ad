# bookkeeper/models.py
# Database models, session factory and schema bootstrap

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import (
    create_engine, Column, Integer, String, Date, Boolean, JSON,
    ForeignKey, DateTime, Text, Float, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

from .config import get_settings
from . import categories

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def make_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


# Database Setup
engine = make_engine(get_settings().database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# ===== USERS =====

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    name = Column(String, nullable=False)
    company_name = Column(String, nullable=False)
    phone = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    last_login = Column(DateTime, nullable=True)

    income = relationship("Income", back_populates="owner")
    expenses = relationship("Expense", back_populates="owner")
    budgets = relationship("Budget", back_populates="owner")
    company_info = relationship("CompanyInfo", back_populates="owner", uselist=False)

# ===== LEDGERS =====

class Income(Base):
    __tablename__ = "income"
    __table_args__ = (UniqueConstraint("user_id", "income_id", name="uq_income_display_id"),)

    id = Column(Integer, primary_key=True, index=True)
    income_id = Column(String, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    customer = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    tax_rate = Column(Float, default=5.0)
    tax_amount = Column(Float, default=0.0)
    total_amount = Column(Float, nullable=False)
    status = Column(String, default="pending", index=True)
    payment_method = Column(String, default="bank_transfer")
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="income")


class Expense(Base):
    __tablename__ = "expense"
    __table_args__ = (UniqueConstraint("user_id", "expense_id", name="uq_expense_display_id"),)

    id = Column(Integer, primary_key=True, index=True)
    expense_id = Column(String, nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    vendor = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    tax_rate = Column(Float, default=5.0)
    tax_amount = Column(Float, default=0.0)
    total_amount = Column(Float, nullable=False)
    status = Column(String, default="pending", index=True)
    payment_method = Column(String, default="bank_transfer")
    receipt_path = Column(String, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="expenses")


class LedgerCounter(Base):
    """Per-user sequence behind the INC/EXP display ids."""
    __tablename__ = "ledger_counters"

    user_id = Column(String, ForeignKey("users.id"), primary_key=True)
    ledger = Column(String, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)

# ===== COMPANY & SETTINGS =====

class CompanyInfo(Base):
    __tablename__ = "company_info"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, unique=True)
    company_name = Column(String, nullable=False)
    tax_id = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    contact_person = Column(String, nullable=True)
    business_type = Column(String, nullable=True)
    established_date = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="company_info")


class SystemSetting(Base):
    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, index=True)
    setting_key = Column(String, unique=True, nullable=False, index=True)
    setting_value = Column(Text, nullable=True)
    setting_type = Column(String, default="string")
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

# ===== BUDGETS =====

class BudgetCategory(Base):
    __tablename__ = "budget_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    icon = Column(String, nullable=True)
    color = Column(String, nullable=True)
    is_income = Column(Boolean, default=False)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    budget_type = Column(String, nullable=False, default="monthly")
    amount = Column(Float, nullable=False)
    period = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="budgets")
    executions = relationship("BudgetExecution", back_populates="budget")


class BudgetExecution(Base):
    __tablename__ = "budget_executions"
    __table_args__ = (UniqueConstraint("budget_id", "period", name="uq_execution_period"),)

    id = Column(Integer, primary_key=True, index=True)
    budget_id = Column(Integer, ForeignKey("budgets.id"), nullable=False, index=True)
    period = Column(String, nullable=False)
    actual_amount = Column(Float, default=0.0)
    usage_percentage = Column(Float, default=0.0)
    status = Column(String, default="normal")
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    budget = relationship("Budget", back_populates="executions")

# ===== TAX AUDIT LOG =====

class TaxCalculation(Base):
    __tablename__ = "tax_calculations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    calculation_type = Column(String, nullable=False, index=True)
    input_data = Column(JSON, nullable=False)
    result_data = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow)

# ===== QUERY HELPERS =====

def fetch_all(db: Session, statement, params: dict = None) -> list:
    """Run a statement and return every row as a dict."""
    result = db.execute(statement, params or {})
    return [dict(row._mapping) for row in result]


def fetch_one(db: Session, statement, params: dict = None):
    """Run a statement and return the first row as a dict, or None."""
    row = db.execute(statement, params or {}).first()
    return dict(row._mapping) if row is not None else None


def execute(db: Session, statement, params: dict = None) -> int:
    """Run a write statement and return the number of affected rows."""
    result = db.execute(statement, params or {})
    return result.rowcount

# ===== BOOTSTRAP =====

DEFAULT_SYSTEM_SETTINGS = [
    ("currency", "TWD", "string", "預設貨幣"),
    ("date_format", "YYYY-MM-DD", "string", "日期格式"),
    ("timezone", "Asia/Taipei", "string", "時區"),
    ("language", "zh-TW", "string", "介面語言"),
    ("decimal_places", "2", "number", "小數位數"),
    ("auto_backup", "true", "boolean", "自動備份"),
    ("backup_interval", "7", "number", "備份間隔（天）"),
]

RESET_EXTRA_SETTINGS = [
    ("tax_year_start", "1", "number", "稅務年度開始月份"),
    ("fiscal_year_start", "1", "number", "會計年度開始月份"),
] + [
    (key, json.dumps(values, ensure_ascii=False), "json", "預設類別")
    for key, values in categories.default_category_lists().items()
]


def seed_defaults(db: Session):
    """Insert default budget categories and any missing system settings."""
    if db.query(BudgetCategory).count() == 0:
        for category in categories.DEFAULT_BUDGET_CATEGORIES:
            db.add(BudgetCategory(**category))
        logger.info("Seeded %d default budget categories", len(categories.DEFAULT_BUDGET_CATEGORIES))

    existing = {key for (key,) in db.query(SystemSetting.setting_key).all()}
    for key, value, setting_type, description in DEFAULT_SYSTEM_SETTINGS:
        if key not in existing:
            db.add(SystemSetting(
                setting_key=key,
                setting_value=value,
                setting_type=setting_type,
                description=description,
            ))
    db.commit()


def init_database(bind=None):
    """Create all tables and seed reference data."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    db = Session(bind=bind)
    try:
        seed_defaults(db)
    finally:
        db.close()
    logger.info("Database initialised")
