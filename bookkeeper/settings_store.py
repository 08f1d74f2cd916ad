# bookkeeper/settings_store.py
# Company profile, typed system settings, data export/import and database file backups

import io
import json
import logging
import platform
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import sqlalchemy
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .config import get_settings
from .errors import NotFoundError, ValidationError
from .ledger import EXPENSE, INCOME, create_record, serialize
from .schemas import CompanyInfoUpdate, ExpenseCreate, IncomeCreate

logger = logging.getLogger(__name__)

EXPORT_TABLES = ("income", "expense", "company_info")
IMPORT_LEDGERS = {
    "income": (INCOME, IncomeCreate),
    "expense": (EXPENSE, ExpenseCreate),
}
LAST_BACKUP_KEY = "last_backup"


def _timestamp() -> str:
    """Filename-safe UTC timestamp, e.g. ``2024-08-01T10-30-00-123456Z``."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def backup_dir() -> Path:
    path = Path(get_settings().backup_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path

# ===== COMPANY INFO =====

def company_info(db: Session, user_id: str) -> dict:
    info = db.query(models.CompanyInfo).filter(models.CompanyInfo.user_id == user_id).first()
    return serialize(info) if info else {}


def save_company_info(db: Session, user_id: str, fields: dict, commit: bool = True) -> dict:
    """Insert or replace the caller's company profile."""
    info = db.query(models.CompanyInfo).filter(models.CompanyInfo.user_id == user_id).first()
    if info is None:
        info = models.CompanyInfo(user_id=user_id)
        db.add(info)
    for key, value in fields.items():
        setattr(info, key, value)
    info.updated_at = models.utcnow()
    if commit:
        db.commit()
        db.refresh(info)
    else:
        db.flush()
    return serialize(info)

# ===== SYSTEM SETTINGS =====

def decode_setting(value: Optional[str], setting_type: str) -> Any:
    if value is None:
        return None
    if setting_type == "boolean":
        return value.lower() == "true"
    if setting_type == "number":
        number = float(value)
        return int(number) if number.is_integer() else number
    if setting_type == "json":
        return json.loads(value)
    return value


def encode_setting(key: str, value: Any, setting_type: str) -> Optional[str]:
    """Stored text for ``value``; ``decode_setting`` turns it back into the same value."""
    if value is None:
        return None
    if setting_type == "json":
        return json.dumps(value, ensure_ascii=False)
    if setting_type == "boolean":
        if isinstance(value, str):
            if value.lower() not in ("true", "false"):
                raise ValidationError(f"Setting '{key}' must be a boolean")
            return value.lower()
        return "true" if value else "false"
    if setting_type == "number":
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Setting '{key}' must be a number")
        return str(int(number)) if number.is_integer() else str(number)
    if not isinstance(value, str):
        raise ValidationError(f"Setting '{key}' must be a string")
    return value


def system_settings(db: Session) -> Dict[str, dict]:
    rows = db.query(models.SystemSetting).order_by(models.SystemSetting.setting_key).all()
    return {
        row.setting_key: {
            "value": decode_setting(row.setting_value, row.setting_type),
            "type": row.setting_type,
            "description": row.description,
        }
        for row in rows
    }


def _upsert_setting(db: Session, key: str, value: Optional[str], setting_type: str,
                    description: Optional[str] = None):
    row = db.query(models.SystemSetting).filter(models.SystemSetting.setting_key == key).first()
    if row is None:
        row = models.SystemSetting(setting_key=key)
        db.add(row)
    row.setting_value = value
    row.setting_type = setting_type
    if description is not None:
        row.description = description
    row.updated_at = models.utcnow()


def update_system_settings(db: Session, entries: Dict[str, Any]) -> int:
    """Encode and upsert every entry, all or nothing."""
    encoded = [
        (key, encode_setting(key, entry.value, entry.type), entry.type, entry.description)
        for key, entry in entries.items()
    ]
    try:
        for row in encoded:
            _upsert_setting(db, *row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Updated %d system settings", len(encoded))
    return len(encoded)


def reset_settings(db: Session) -> int:
    defaults = models.DEFAULT_SYSTEM_SETTINGS + models.RESET_EXTRA_SETTINGS
    try:
        for row in defaults:
            _upsert_setting(db, *row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Reset %d system settings to defaults", len(defaults))
    return len(defaults)

# ===== EXPORT =====

def export_data(db: Session, user_id: str) -> dict:
    """The caller's ledgers and company profile as plain rows."""
    data = {
        "income": [serialize(row) for row in db.query(models.Income).filter(
            models.Income.user_id == user_id).order_by(models.Income.id)],
        "expense": [serialize(row) for row in db.query(models.Expense).filter(
            models.Expense.user_id == user_id).order_by(models.Expense.id)],
    }
    profile = company_info(db, user_id)
    data["company_info"] = [profile] if profile else []
    data["exportInfo"] = {
        "exportDate": datetime.now(timezone.utc).isoformat(),
        "version": get_settings().version,
        "tables": list(EXPORT_TABLES),
    }
    return data


def export_frames(data: dict) -> Dict[str, pd.DataFrame]:
    return {table: pd.DataFrame(data[table]) for table in EXPORT_TABLES}


def export_csv(data: dict) -> str:
    """One CSV with a leading ``table`` column naming each row's source."""
    frames = [
        frame.assign(table=table)
        for table, frame in export_frames(data).items()
        if not frame.empty
    ]
    if not frames:
        return pd.DataFrame(columns=["table"]).to_csv(index=False)
    combined = pd.concat(frames, ignore_index=True, sort=False)
    columns = ["table"] + [column for column in combined.columns if column != "table"]
    return combined[columns].to_csv(index=False)


def export_xlsx(data: dict) -> bytes:
    """Workbook with an export_info sheet followed by one sheet per table."""
    info = dict(data["exportInfo"], tables=", ".join(data["exportInfo"]["tables"]))
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame([info]).to_excel(writer, sheet_name="export_info", index=False)
        for table, frame in export_frames(data).items():
            frame.to_excel(writer, sheet_name=table, index=False)
    return buffer.getvalue()


def export_filename(extension: str) -> str:
    return f"financial_data_{datetime.now(timezone.utc).date().isoformat()}.{extension}"

# ===== IMPORT =====

def _field_errors(table: str, index: int, error: SchemaValidationError) -> List[dict]:
    return [
        {
            "field": f"{table}[{index}]." + ".".join(str(part) for part in item["loc"]),
            "message": item["msg"],
        }
        for item in error.errors()
    ]


def _validate_import(data: Dict[str, Any]) -> tuple:
    """Validate every row before anything is written."""
    errors = []
    ledgers = {}
    for table, (_, schema) in IMPORT_LEDGERS.items():
        if table not in data:
            continue
        if not isinstance(data[table], list):
            errors.append({"field": table, "message": "Must be a list of rows"})
            continue
        rows = []
        for index, row in enumerate(data[table]):
            try:
                rows.append(schema.model_validate(row).model_dump())
            except SchemaValidationError as e:
                errors.extend(_field_errors(table, index, e))
        ledgers[table] = rows

    profile = None
    if data.get("company_info"):
        if not isinstance(data["company_info"], list):
            data = dict(data, company_info=[data["company_info"]])
        try:
            profile = CompanyInfoUpdate.model_validate(data["company_info"][0]).model_dump()
        except SchemaValidationError as e:
            errors.extend(_field_errors("company_info", 0, e))

    if errors:
        raise ValidationError("Invalid import data", details=errors)
    if not ledgers and profile is None:
        raise ValidationError("Import data contains no income, expense or company_info rows")
    return ledgers, profile


def import_data(db: Session, user_id: str, data: Dict[str, Any], overwrite: bool = False) -> dict:
    """Load exported rows for the caller in one transaction.

    With ``overwrite`` the caller's existing rows of each supplied ledger are
    deleted first. Imported rows get fresh display ids.
    """
    ledgers, profile = _validate_import(data)
    imported = {}
    try:
        for table, rows in ledgers.items():
            ledger = IMPORT_LEDGERS[table][0]
            if overwrite:
                db.query(ledger.model).filter(ledger.model.user_id == user_id).delete(
                    synchronize_session=False
                )
            for fields in rows:
                create_record(db, ledger, user_id, fields, commit=False)
            imported[table] = len(rows)
        if profile is not None:
            save_company_info(db, user_id, profile, commit=False)
            imported["company_info"] = 1
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Import for %s rolled back", user_id)
        raise
    logger.info("Imported %s for %s (overwrite=%s)", imported, user_id, overwrite)
    return {"imported": imported, "overwrite": overwrite}

# ===== DATABASE BACKUPS =====

def _database_file() -> Path:
    path = get_settings().database_path
    if path is None:
        raise ValidationError("Database backups need a file-based SQLite database")
    if not path.is_file():
        raise NotFoundError("Database file not found")
    return path


def _backup_file(filename: str) -> Path:
    """Resolve ``filename`` strictly inside the backup directory."""
    if Path(filename).name != filename or filename.startswith(".") or not filename.endswith(".db"):
        raise ValidationError("Invalid backup filename")
    path = backup_dir() / filename
    if not path.is_file():
        raise NotFoundError("Backup file not found")
    return path


def create_backup(db: Session) -> dict:
    source = _database_file()
    stamp = _timestamp()
    target = backup_dir() / f"backup_{stamp}.db"
    shutil.copy2(source, target)

    try:
        _upsert_setting(db, LAST_BACKUP_KEY, stamp, "string", "最後備份時間")
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    logger.info("Database backed up to %s", target)
    return {"filename": target.name, "timestamp": stamp, "size": target.stat().st_size}


def list_backups() -> List[dict]:
    """Database backups, newest first."""
    backups = []
    for path in backup_dir().glob("*.db"):
        stat = path.stat()
        backups.append({
            "filename": path.name,
            "size": stat.st_size,
            "createdAt": datetime.fromtimestamp(stat.st_ctime, timezone.utc).isoformat(),
            "modifiedAt": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat(),
            "_mtime": stat.st_mtime,
        })
    backups.sort(key=lambda item: (item["_mtime"], item["filename"]), reverse=True)
    for item in backups:
        del item["_mtime"]
    return backups


def restore_backup(filename: str) -> dict:
    """Replace the database file with a backup, keeping a pre-restore copy."""
    source = _backup_file(filename)
    database = _database_file()
    stamp = _timestamp()
    safety_copy = backup_dir() / f"pre_restore_{stamp}.db"
    shutil.copy2(database, safety_copy)
    shutil.copy2(source, database)
    # Pooled connections may still hold pages of the replaced file
    models.engine.dispose()
    logger.warning("Database restored from %s (previous state in %s)", filename, safety_copy.name)
    return {"restoredFile": filename, "currentBackup": safety_copy.name, "timestamp": stamp}


def delete_backup(filename: str) -> dict:
    path = _backup_file(filename)
    path.unlink()
    logger.info("Deleted backup %s", filename)
    return {"filename": filename}

# ===== SYSTEM INFO =====

def system_info(db: Session, user_id: str) -> dict:
    settings = get_settings()
    path = settings.database_path
    size = path.stat().st_size if path is not None and path.is_file() else 0
    last_backup = db.query(models.SystemSetting).filter(
        models.SystemSetting.setting_key == LAST_BACKUP_KEY
    ).first()

    def owned(model) -> int:
        return db.query(model).filter(model.user_id == user_id).count()

    return {
        "version": settings.version,
        "environment": settings.environment,
        "pythonVersion": platform.python_version(),
        "sqlalchemyVersion": sqlalchemy.__version__,
        "pandasVersion": pd.__version__,
        "platform": platform.system(),
        "arch": platform.machine(),
        "database": {
            "size": size,
            "incomeRecords": owned(models.Income),
            "expenseRecords": owned(models.Expense),
            "taxCalculations": owned(models.TaxCalculation),
            "budgets": owned(models.Budget),
        },
        "lastBackup": last_backup.setting_value if last_backup else None,
    }
