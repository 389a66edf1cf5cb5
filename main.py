import logging
import secrets
import tomllib
from contextlib import asynccontextmanager
from http import HTTPStatus
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings
from database import build_engine, build_session_factory
from errors import LedgerError, Unauthorized
from filters import parse_list_params
from orchestrator import LedgerQueries
from periods import resolve_window
from schemas import AccountIn, AccountUpdateIn, TransactionIn, TransactionUpdateIn
from services import AccountService, TransactionService
from store import LedgerStore, init_schema

logger = logging.getLogger(__name__)

PYPROJECT_PATH = Path(__file__).resolve().with_name("pyproject.toml")


def _load_app_version(path: Path = PYPROJECT_PATH) -> str:
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"
    return str(data.get("project", {}).get("version", "unknown"))


APP_VERSION = _load_app_version()


def envelope(
    status_code: int,
    custom_code: str,
    data: object = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body: dict[str, object] = {"status_code": status_code, "custom_code": custom_code}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def error_envelope(
    status_code: int,
    custom_code: str,
    errors: list[str],
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status_code": status_code, "custom_code": custom_code, "errors": errors},
        headers=headers,
    )


def get_store(request: Request) -> LedgerStore:
    return request.app.state.store


def get_queries(request: Request) -> LedgerQueries:
    return request.app.state.queries


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings)
        init_schema(engine)
        store = LedgerStore(build_session_factory(engine))
        store.ping()
        app.state.store = store
        app.state.queries = LedgerQueries(
            store, settings.operation_timeout_secs, ZoneInfo(settings.timezone)
        )
        logger.info("store_connected")
        try:
            yield
        finally:
            engine.dispose()
            logger.info("store_disposed")

    basic_auth = HTTPBasic(auto_error=False)

    async def require_auth(request: Request) -> None:
        # Credentials are only parsed when auth is enabled.
        if not settings.auth_enabled:
            return
        try:
            credentials = await basic_auth(request)
        except StarletteHTTPException as exc:
            raise Unauthorized() from exc
        if credentials is None:
            raise Unauthorized()
        username_ok = secrets.compare_digest(
            credentials.username.encode("utf-8"), settings.auth_username.encode("utf-8")
        )
        password_ok = secrets.compare_digest(
            credentials.password.encode("utf-8"), settings.auth_password.encode("utf-8")
        )
        if not (username_ok and password_ok):
            raise Unauthorized()

    app = FastAPI(
        title="Ledger",
        version=APP_VERSION,
        lifespan=lifespan,
        dependencies=[Depends(require_auth)],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError):
        if exc.status_code >= 500:
            logger.error(f"request_failed: path={request.url.path} error={exc.message}")
        else:
            logger.info(
                f"request_rejected: path={request.url.path} code={exc.code} "
                f"reason={exc.reason}"
            )
        return error_envelope(exc.status_code, exc.code, [exc.public_message])

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            messages.append(f"{location}: {error.get('msg', 'invalid')}")
        return error_envelope(400, "BAD_REQUEST", messages)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        try:
            code = HTTPStatus(exc.status_code).name
        except ValueError:
            code = "HTTP_ERROR"
        logger.info(f"request_rejected: path={request.url.path} code={code}")
        return error_envelope(
            exc.status_code, code, [str(exc.detail)], headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"request_crashed: path={request.url.path} error={exc!r}", exc_info=exc)
        return error_envelope(500, "INTERNAL_SERVER_ERROR", ["internal server error"])

    @app.get("/api")
    def api_info():
        return envelope(200, "OK", {"name": settings.app_name, "version": APP_VERSION})

    @app.post("/api/accounts")
    def create_account(data: AccountIn, store: LedgerStore = Depends(get_store)):
        AccountService(store).create(data)
        return envelope(201, "ACCOUNT_CREATED")

    @app.get("/api/accounts")
    async def list_accounts(queries: LedgerQueries = Depends(get_queries)):
        accounts = await queries.accounts_with_balances()
        return envelope(200, "ACCOUNTS_LISTED", accounts)

    @app.patch("/api/accounts/{account_id}")
    def update_account(
        account_id: str, data: AccountUpdateIn, store: LedgerStore = Depends(get_store)
    ):
        AccountService(store).rename(account_id, data.name)
        return envelope(200, "ACCOUNT_UPDATED")

    @app.delete("/api/accounts/{account_id}")
    def delete_account(account_id: str, store: LedgerStore = Depends(get_store)):
        AccountService(store).delete(account_id)
        return envelope(200, "ACCOUNT_DELETED")

    @app.post("/api/transactions")
    def create_transaction(data: TransactionIn, store: LedgerStore = Depends(get_store)):
        transaction_id = TransactionService(store).create(data)
        return envelope(201, "TRANSACTION_CREATED", {"id": transaction_id})

    @app.get("/api/transactions")
    async def list_transactions(
        start_amount: Optional[str] = None,
        end_amount: Optional[str] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        account_id: Optional[str] = None,
        category: Optional[str] = None,
        notes_hint: Optional[str] = None,
        tags: Optional[list[str]] = Query(default=None),
        tags_match: Optional[str] = None,
        limit: Optional[str] = None,
        skip: Optional[str] = None,
        sort_field: Optional[str] = None,
        sort_order: Optional[str] = None,
        closing_bal: bool = True,
        queries: LedgerQueries = Depends(get_queries),
    ):
        query = parse_list_params(
            start_amount=start_amount,
            end_amount=end_amount,
            start_time=start_time,
            end_time=end_time,
            account_id=account_id,
            category=category,
            notes_hint=notes_hint,
            tags=tags,
            tags_match=tags_match,
            limit=limit,
            skip=skip,
            sort_field=sort_field,
            sort_order=sort_order,
        )
        if closing_bal:
            items, count = await queries.list_with_closing_balances(query)
        else:
            items, count = await queries.list_page(query)
        return envelope(
            200, "TRANSACTIONS_LISTED", items, headers={"x-total-count": str(count)}
        )

    @app.get("/api/transactions/{transaction_id}")
    def get_transaction(transaction_id: int, store: LedgerStore = Depends(get_store)):
        txn = TransactionService(store).get(transaction_id)
        return envelope(200, "TRANSACTION_FETCHED", txn.as_dict())

    @app.patch("/api/transactions/{transaction_id}")
    def update_transaction(
        transaction_id: int,
        data: TransactionUpdateIn,
        store: LedgerStore = Depends(get_store),
    ):
        TransactionService(store).update(transaction_id, data)
        return envelope(200, "TRANSACTION_UPDATED")

    @app.delete("/api/transactions/{transaction_id}")
    def delete_transaction(transaction_id: int, store: LedgerStore = Depends(get_store)):
        TransactionService(store).delete(transaction_id)
        return envelope(200, "TRANSACTION_DELETED")

    @app.get("/api/balances/by_category")
    async def balances_by_category(
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        queries: LedgerQueries = Depends(get_queries),
    ):
        window = resolve_window(start_time, end_time)
        budget = await queries.budget(window)
        return envelope(200, "BALANCES_FETCHED", budget.as_dict())

    @app.get("/api/balances/by_time")
    async def balances_by_time(queries: LedgerQueries = Depends(get_queries)):
        series = await queries.balances_over_time()
        return envelope(200, "BALANCES_FETCHED", series)

    return app


def run() -> None:
    import uvicorn

    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=8080)
