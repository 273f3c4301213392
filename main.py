import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from csrf import generate_csrf_token, require_csrf
from database import SessionLocal
from models import Obligation, ObligationKind, Record, ReminderPreference
from notifier import DispatchFailure
from recurrence import local_now
from reminders import MAX_MANUAL_DAYS, ReminderService
from scheduler import SchedulerManager
from schemas import (
    ObligationIn,
    QuickAddIn,
    RecordIn,
    RecordUpdateIn,
    ReminderPreferenceIn,
)
from services import (
    AmbiguousMatchError,
    DashboardService,
    NotFoundError,
    ObligationService,
    QuickAddService,
    RecordFilters,
    RecordService,
    ReminderPreferenceService,
    get_current_user_id,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Bills")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AmbiguousMatchError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def obligation_payload(obligation: Obligation) -> dict[str, object]:
    return {
        "id": obligation.id,
        "kind": obligation.kind.value,
        "name": obligation.name,
        "icon": obligation.icon,
        "color": obligation.color,
        "day_of_month": obligation.day_of_month,
        "cycle_months": obligation.cycle_months,
        "fixed_amount": obligation.fixed_amount,
        "stopped": obligation.stopped,
    }


def record_payload(record: Record) -> dict[str, object]:
    return {
        "id": record.id,
        "obligation_id": record.obligation_id,
        "obligation_name": record.obligation.name if record.obligation else None,
        "kind": record.kind.value,
        "year": record.year,
        "month": record.month,
        "amount": record.amount,
        "note": record.note,
        "bill_record_id": record.bill_record_id,
    }


def preference_payload(pref: ReminderPreference) -> dict[str, object]:
    return {
        "push_url": pref.push_url,
        "enabled": pref.enabled,
        "remind_hour": pref.remind_hour,
        "remind_days_before": pref.remind_days_before,
    }


@app.get("/api/csrf-token")
def api_csrf_token():
    return {"csrf_token": generate_csrf_token(get_current_user_id())}


@app.get("/api/obligations")
def list_obligations(
    kind: Optional[ObligationKind] = None,
    include_stopped: bool = True,
    db: Session = Depends(get_db),
):
    items = ObligationService(db).list(kind, include_stopped=include_stopped)
    return {"items": [obligation_payload(o) for o in items]}


@app.post("/api/obligations", status_code=201, dependencies=[Depends(require_csrf)])
def create_obligation(data: ObligationIn, db: Session = Depends(get_db)):
    try:
        obligation = ObligationService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return obligation_payload(obligation)


@app.get("/api/obligations/{obligation_id}")
def get_obligation(obligation_id: int, db: Session = Depends(get_db)):
    try:
        obligation = ObligationService(db).get(obligation_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return obligation_payload(obligation)


@app.put("/api/obligations/{obligation_id}", dependencies=[Depends(require_csrf)])
def update_obligation(
    obligation_id: int, data: ObligationIn, db: Session = Depends(get_db)
):
    try:
        obligation = ObligationService(db).update(obligation_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return obligation_payload(obligation)


@app.post(
    "/api/obligations/{obligation_id}/toggle", dependencies=[Depends(require_csrf)]
)
def toggle_obligation(obligation_id: int, db: Session = Depends(get_db)):
    try:
        obligation = ObligationService(db).toggle(obligation_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return obligation_payload(obligation)


@app.delete("/api/obligations/{obligation_id}", dependencies=[Depends(require_csrf)])
def delete_obligation(obligation_id: int, db: Session = Depends(get_db)):
    try:
        ObligationService(db).delete(obligation_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/records")
def list_records(
    obligation_id: Optional[int] = None,
    kind: Optional[ObligationKind] = None,
    year: Optional[int] = None,
    month: Optional[int] = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
):
    filters = RecordFilters(
        obligation_id=obligation_id, kind=kind, year=year, month=month
    )
    items = RecordService(db).list(filters)
    total = None
    if year is not None and month is not None and obligation_id is None and kind is None:
        total = str(RecordService(db).monthly_total(year, month))
    return {"items": [record_payload(r) for r in items], "total": total}


@app.post("/api/records", status_code=201, dependencies=[Depends(require_csrf)])
def create_record(data: RecordIn, db: Session = Depends(get_db)):
    try:
        record = RecordService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return record_payload(record)


@app.post(
    "/api/records/quick-add", status_code=201, dependencies=[Depends(require_csrf)]
)
def quick_add_record(data: QuickAddIn, db: Session = Depends(get_db)):
    try:
        record = QuickAddService(db).log(data, now=local_now())
    except ValueError as exc:
        raise http_error(exc) from exc
    return record_payload(record)


@app.get("/api/records/{record_id}")
def get_record(record_id: int, db: Session = Depends(get_db)):
    try:
        record = RecordService(db).get(record_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return record_payload(record)


@app.put("/api/records/{record_id}", dependencies=[Depends(require_csrf)])
def update_record(record_id: int, data: RecordUpdateIn, db: Session = Depends(get_db)):
    try:
        record = RecordService(db).update(record_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return record_payload(record)


@app.delete("/api/records/{record_id}", dependencies=[Depends(require_csrf)])
def delete_record(record_id: int, db: Session = Depends(get_db)):
    try:
        RecordService(db).delete(record_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/dashboard")
def dashboard(db: Session = Depends(get_db)):
    return DashboardService(db).stats(now=local_now())


@app.get("/api/due")
def due_items(
    kind: ObligationKind = ObligationKind.bill,
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
):
    now = local_now()
    year = year or now.year
    month = month or now.month
    items = DashboardService(db).due_items(kind, year, month, now=now)
    return {"kind": kind.value, "year": year, "month": month, "items": items}


@app.get("/api/reminders/settings")
def get_reminder_settings(db: Session = Depends(get_db)):
    pref = ReminderPreferenceService(db).get()
    return preference_payload(pref)


@app.put("/api/reminders/settings", dependencies=[Depends(require_csrf)])
def update_reminder_settings(
    data: ReminderPreferenceIn, db: Session = Depends(get_db)
):
    try:
        pref = ReminderPreferenceService(db).update(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return preference_payload(pref)


@app.post("/api/reminders/test", dependencies=[Depends(require_csrf)])
def send_test_reminder(db: Session = Depends(get_db)):
    try:
        ReminderService(db).send_test(get_current_user_id())
    except DispatchFailure as exc:
        logger.warning(f"test_notification_failed: error={exc}")
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"message": "Test notification sent successfully"}


@app.post("/api/reminders/trigger", dependencies=[Depends(require_csrf)])
def trigger_reminder(
    days: Optional[int] = Query(default=None, ge=0, le=MAX_MANUAL_DAYS),
    db: Session = Depends(get_db),
):
    try:
        result = ReminderService(db).trigger(
            get_current_user_id(), days_before=days, now=local_now()
        )
    except ValueError as exc:
        raise http_error(exc) from exc
    return result


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
