# bookkeeper/routers/settings.py
# Company profile, system settings, data export/import and backup endpoints

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from .. import models, schemas, settings_store
from ..dependencies import get_current_user, get_db, require_operator

router = APIRouter()

DOWNLOAD_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

# ===== COMPANY & SYSTEM SETTINGS =====

@router.get("/company-info")
def get_company_info(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": settings_store.company_info(db, current_user.id)}


@router.put("/company-info")
def update_company_info(
    payload: schemas.CompanyInfoUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = settings_store.save_company_info(db, current_user.id, payload.model_dump())
    return {"success": True, "message": "Company information saved", "data": data}


@router.get("/system-settings")
def get_system_settings(db: Session = Depends(get_db)):
    return {"success": True, "data": settings_store.system_settings(db)}


@router.put("/system-settings")
def update_system_settings(
    payload: schemas.SystemSettingsUpdate,
    operator: models.User = Depends(require_operator),
    db: Session = Depends(get_db)
):
    """Upsert several typed settings at once; nothing is saved if any entry fails."""
    count = settings_store.update_system_settings(db, payload.settings)
    return {
        "success": True,
        "message": f"{count} settings updated",
        "data": settings_store.system_settings(db),
    }


@router.post("/reset-settings")
def reset_settings(
    operator: models.User = Depends(require_operator),
    db: Session = Depends(get_db)
):
    count = settings_store.reset_settings(db)
    return {
        "success": True,
        "message": f"{count} settings restored to defaults",
        "data": settings_store.system_settings(db),
    }

# ===== EXPORT & IMPORT =====

@router.get("/export-data")
def export_data(
    export_format: str = Query("json", alias="format", pattern="^(json|csv|xlsx)$"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Caller's records as JSON, or as a CSV/Excel download."""
    data = settings_store.export_data(db, current_user.id)
    if export_format == "json":
        return {"success": True, "data": data}

    content = settings_store.export_csv(data) if export_format == "csv" else settings_store.export_xlsx(data)
    filename = settings_store.export_filename(export_format)
    return Response(
        content=content,
        media_type=DOWNLOAD_TYPES[export_format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import-data")
def import_data(
    payload: schemas.ImportDataRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = settings_store.import_data(db, current_user.id, payload.data, payload.overwrite)
    return {"success": True, "message": "Data imported", "data": data}

# ===== BACKUPS =====

@router.post("/backup")
def create_backup(
    operator: models.User = Depends(require_operator),
    db: Session = Depends(get_db)
):
    return {"success": True, "message": "Backup created", "data": settings_store.create_backup(db)}


@router.get("/backups")
def list_backups(operator: models.User = Depends(require_operator)):
    backups = settings_store.list_backups()
    return {
        "success": True,
        "data": backups,
        "message": None if backups else "No backups yet",
    }


@router.post("/restore")
def restore_backup(
    payload: schemas.RestoreRequest,
    operator: models.User = Depends(require_operator)
):
    return {
        "success": True,
        "message": "Database restored",
        "data": settings_store.restore_backup(payload.filename),
    }


@router.delete("/backups/{filename}")
def delete_backup(filename: str, operator: models.User = Depends(require_operator)):
    return {"success": True, "message": "Backup deleted", "data": settings_store.delete_backup(filename)}


@router.get("/system-info")
def system_info(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": settings_store.system_info(db, current_user.id)}
