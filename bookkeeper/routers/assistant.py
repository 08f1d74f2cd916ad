# bookkeeper/routers/assistant.py
# Smart assistant endpoints: classification, reminders, chat, reports, backups and receipts

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import assistant, models, schemas
from ..dependencies import get_current_user, get_db
from ..errors import ReceiptScanError
from ..receipt_scanner import ReceiptScanner, get_receipt_scanner

router = APIRouter()

# ===== CLASSIFICATION & REMINDERS =====

@router.post("/classify-transaction")
def classify_transaction(
    payload: schemas.ClassifyRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Suggest a category from past entries or keyword rules."""
    data = assistant.classify_transaction(
        db, current_user.id, payload.description, payload.amount, payload.vendor, payload.type
    )
    return {"success": True, "data": data}


@router.get("/reminders")
def reminders(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": assistant.reminders(db, current_user.id)}


@router.get("/health-score")
def health_score(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": assistant.health_score(db, current_user.id)}

# ===== CONVERSATION & INSIGHTS =====

@router.post("/chat")
def chat(
    payload: schemas.ChatRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": assistant.chat(db, current_user.id, payload.message)}


@router.get("/insights")
def insights(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": {"insights": assistant.insights(db, current_user.id)}}


@router.get("/task-suggestions")
def task_suggestions(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": assistant.task_suggestions(db, current_user.id)}


@router.post("/generate-smart-report")
def generate_smart_report(
    payload: schemas.SmartReportRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = assistant.smart_report(db, current_user.id, payload.report_type, payload.date_range)
    return {"success": True, "data": data}


@router.get("/financial-goals")
def financial_goals(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": assistant.financial_goals(db, current_user.id)}


@router.get("/automation-suggestions")
def automation_suggestions(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": assistant.automation_suggestions(db, current_user.id)}

# ===== BACKUPS =====

@router.get("/backup-status")
def backup_status(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": assistant.backup_status(db, current_user.id)}


@router.post("/create-smart-backup")
def create_smart_backup(
    payload: schemas.SmartBackupRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = assistant.create_smart_backup(db, current_user.id, payload.include_settings, payload.note)
    return {"success": True, "message": "Backup created", "data": data}


@router.post("/verify-backup")
def verify_backup(
    payload: schemas.VerifyBackupRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    data = assistant.verify_backup(db, current_user.id, payload.backup_id, payload.backup_data)
    return {"success": True, "data": data}

# ===== RECEIPTS =====

@router.post("/scan-receipt")
def scan_receipt(
    payload: schemas.ScanReceiptRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    scanner: ReceiptScanner = Depends(get_receipt_scanner)
):
    data = assistant.scan_receipt(db, current_user.id, scanner, payload.image_data, payload.receipt_type)
    return {"success": True, "data": data}


@router.post("/batch-scan-receipts")
def batch_scan_receipts(
    payload: schemas.BatchScanRequest,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    scanner: ReceiptScanner = Depends(get_receipt_scanner)
):
    """Scan up to ten receipts; unreadable ones are reported without failing the batch."""
    results, errors = [], []
    for index, receipt in enumerate(payload.receipts):
        receipt_id = receipt.filename or index
        try:
            scanned = assistant.scan_receipt(
                db, current_user.id, scanner, receipt.image_data, receipt.receipt_type
            )
        except ReceiptScanError as e:
            errors.append({"id": receipt_id, "error": e.message})
            continue
        results.append({"id": receipt_id, "success": True, "data": scanned["suggestedRecord"]})

    return {
        "success": True,
        "data": {
            "processedCount": len(results),
            "errorCount": len(errors),
            "results": results,
            "errors": errors,
            "batchSummary": assistant.batch_summary(results),
        },
    }


@router.get("/receipt-templates")
def receipt_templates(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return {"success": True, "data": assistant.receipt_templates(db, current_user.id)}
