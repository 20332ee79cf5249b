import logging
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import ConfigurationError, get_settings
from database import Store
from schemas import (
    AccountRecord,
    AlertRecord,
    BudgetRecord,
    GoalRecord,
    InsightRecord,
    MonthlyStatsRecord,
    TransactionIn,
    TransactionRecord,
    UserRecord,
)
from services import (
    FinanceQueryService,
    IngestService,
    account_record,
    alert_record,
    budget_record,
    goal_record,
    insight_record,
    monthly_stats_record,
    transaction_record,
    user_record,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/finance")


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.store.session()
    try:
        yield db
    finally:
        db.close()


@router.get("/user", response_model=Optional[UserRecord])
def get_user(db: Session = Depends(get_db)):
    user = FinanceQueryService(db).get_user()
    return user_record(user) if user else None


@router.get("/accounts", response_model=list[AccountRecord])
def list_accounts(db: Session = Depends(get_db)):
    return [account_record(a) for a in FinanceQueryService(db).list_accounts()]


@router.get("/transactions", response_model=list[TransactionRecord])
def list_transactions(accountId: Optional[str] = None, db: Session = Depends(get_db)):
    txns = FinanceQueryService(db).list_transactions(account_id=accountId)
    return [transaction_record(t) for t in txns]


@router.post("/transactions", response_model=TransactionRecord, status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    txn = IngestService(db).ingest(data)
    return transaction_record(txn)


@router.get("/budgets", response_model=list[BudgetRecord])
def list_budgets(db: Session = Depends(get_db)):
    return [budget_record(b) for b in FinanceQueryService(db).list_budgets()]


@router.get("/goals", response_model=list[GoalRecord])
def list_goals(db: Session = Depends(get_db)):
    return [goal_record(g) for g in FinanceQueryService(db).list_goals()]


@router.get("/alerts", response_model=list[AlertRecord])
def list_alerts(db: Session = Depends(get_db)):
    return [alert_record(a) for a in FinanceQueryService(db).list_alerts()]


@router.get("/insights", response_model=list[InsightRecord])
def list_insights(db: Session = Depends(get_db)):
    return [insight_record(i) for i in FinanceQueryService(db).list_insights()]


@router.get("/monthly-stats/{month}", response_model=Optional[MonthlyStatsRecord])
def get_monthly_stats(month: str, db: Session = Depends(get_db)):
    aggregate = FinanceQueryService(db).get_monthly_stats(month)
    return monthly_stats_record(aggregate) if aggregate else None


def create_app(store: Optional[Store] = None) -> FastAPI:
    app = FastAPI(title="Finance Tracker")
    app.state.store = store or Store(get_settings().database_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def startup_event():
        app.state.store.connect()

    @app.on_event("shutdown")
    def shutdown_event():
        app.state.store.close()

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                "loc": [str(part) for part in err.get("loc", ())],
                "msg": err.get("msg", ""),
            }
            for err in exc.errors()
        ]
        logger.info(f"request_rejected: path={request.url.path} errors={len(details)}")
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid transaction payload", "details": details},
        )

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"storage_error: path={request.url.path}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error(f"configuration_error: path={request.url.path} detail={exc}")
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"unhandled_error: path={request.url.path}", exc_info=exc)
        return JSONResponse(status_code=500, content={"error": str(exc) or type(exc).__name__})

    @app.get("/")
    def root():
        return {"name": "Finance API", "status": "ok"}

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
