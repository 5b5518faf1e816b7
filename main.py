import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from csv_utils import (
    XLSX_CONTENT_TYPE,
    transaction_template_csv,
    transaction_template_xlsx,
)
from database import SessionLocal, init_db
from events import SubscriptionBus
from metrics import dashboard_summary, filter_transactions, spending_view
from models import Category, Collection
from periods import Granularity, local_today
from recurrence import recurring_calendar
from schemas import (
    BudgetIn,
    SavingsProject,
    SavingsProjectIn,
    SuggestionIn,
    ThemeIn,
    Transaction,
    TransactionIn,
    ViewerIn,
)
from services import DataService, ImportService, RecordNotFound
from store import RecordStore, StorePersistenceError
from suggestions import suggest_category


app = FastAPI(title="DuoBudget")
bus = SubscriptionBus()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_data_service(db: Session = Depends(get_db)) -> DataService:
    return DataService(RecordStore(db), bus)


@app.on_event("startup")
def startup_event():
    init_db()


@app.exception_handler(StorePersistenceError)
def persistence_error_handler(request: Request, exc: StorePersistenceError):
    logging.error(f"persistence_error: path={request.url.path} error={exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.get("/api/transactions")
def api_transactions(
    q: Optional[str] = None,
    category: Optional[Category] = None,
    service: DataService = Depends(get_data_service),
):
    return filter_transactions(service.transactions.list(), q, category)


@app.post("/api/transactions", status_code=201)
def api_create_transaction(
    data: TransactionIn, service: DataService = Depends(get_data_service)
):
    txn = service.transactions.add(data)
    logging.info(f"api_transaction_created: id={txn.id}")
    return txn


@app.put("/api/transactions/{transaction_id}")
def api_update_transaction(
    transaction_id: str,
    data: TransactionIn,
    service: DataService = Depends(get_data_service),
):
    try:
        return service.transactions.update(
            Transaction(id=transaction_id, **data.model_dump())
        )
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(
    transaction_id: str, service: DataService = Depends(get_data_service)
):
    try:
        service.transactions.delete(transaction_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/budgets")
def api_budgets(service: DataService = Depends(get_data_service)):
    return service.budgets.list()


@app.put("/api/budgets/{month}/{category}")
def api_set_budget(
    month: str,
    category: Category,
    data: BudgetIn,
    service: DataService = Depends(get_data_service),
):
    try:
        return service.budgets.set_budget(month, category, data.amount)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/savings")
def api_savings(service: DataService = Depends(get_data_service)):
    return service.savings.list()


@app.post("/api/savings", status_code=201)
def api_create_savings(
    data: SavingsProjectIn, service: DataService = Depends(get_data_service)
):
    return service.savings.add(data)


@app.put("/api/savings/{project_id}")
def api_update_savings(
    project_id: str,
    data: SavingsProjectIn,
    service: DataService = Depends(get_data_service),
):
    try:
        return service.savings.update(SavingsProject(id=project_id, **data.model_dump()))
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.delete("/api/savings/{project_id}", status_code=204)
def api_delete_savings(project_id: str, service: DataService = Depends(get_data_service)):
    try:
        service.savings.delete(project_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return Response(status_code=204)


@app.get("/api/profile")
def api_profile(service: DataService = Depends(get_data_service)):
    return service.profile.get_profile()


@app.put("/api/profile/theme")
def api_update_theme(data: ThemeIn, service: DataService = Depends(get_data_service)):
    return service.profile.update_theme(data.theme)


@app.post("/api/profile/viewers")
def api_add_viewer(data: ViewerIn, service: DataService = Depends(get_data_service)):
    try:
        return service.profile.add_viewer(data.viewer_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.delete("/api/profile/viewers/{viewer_id}")
def api_remove_viewer(viewer_id: str, service: DataService = Depends(get_data_service)):
    try:
        return service.profile.remove_viewer(viewer_id)
    except RecordNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/api/dashboard")
def api_dashboard(
    today: Optional[date] = None, service: DataService = Depends(get_data_service)
):
    return dashboard_summary(
        service.transactions.list(),
        service.budgets.list(),
        service.savings.list(),
        today or local_today(),
    )


@app.get("/api/spending")
def api_spending(
    granularity: Granularity = Granularity.month,
    selection: Optional[str] = None,
    step: int = 0,
    today: Optional[date] = None,
    service: DataService = Depends(get_data_service),
):
    try:
        return spending_view(
            service.transactions.list(),
            service.budgets.list(),
            granularity,
            selection,
            step,
            today or local_today(),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/recurring/{year}/{month}")
def api_recurring(year: int, month: int, service: DataService = Depends(get_data_service)):
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    return recurring_calendar(service.transactions.list(), year, month)


@app.get("/api/import/template")
def api_import_template():
    return Response(
        content=transaction_template_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions_template.csv"'},
    )


@app.get("/api/import/template.xlsx")
def api_import_template_xlsx():
    return Response(
        content=transaction_template_xlsx(),
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": 'attachment; filename="DuoBudget_Template.xlsx"'},
    )


@app.post("/api/import")
async def api_import(
    file: UploadFile = File(...), service: DataService = Depends(get_data_service)
):
    content = await file.read()
    imported = await run_in_threadpool(
        ImportService(service.transactions).commit,
        content,
        file.filename,
        file.content_type,
    )
    logging.info(f"api_import: filename={file.filename} imported={imported}")
    return {"imported": imported}


@app.post("/api/suggest-category")
def api_suggest_category(
    data: SuggestionIn, service: DataService = Depends(get_data_service)
):
    category = suggest_category(
        data.description, data.vendor, service.snapshot(Collection.transactions)
    )
    return {"category": category.value if category else None}
