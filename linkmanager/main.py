import logging
from typing import Any, Optional, Type, TypeVar

from fastapi import Cookie, Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .auth import AuthGate
from .config import AUTH_COOKIE, Settings, get_settings
from .errors import InvalidJSON, MethodNotAllowed, MissingField, Unauthorized
from .models import ChangePasswordIn, Dataset, LoginIn
from .storage import (
    DATA_KEY,
    JsonFileStore,
    KeyValueStore,
    backup_filename,
    load_dataset,
    save_dataset,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


# --- dependencies ---


def get_store(settings: Settings = Depends(get_settings)) -> KeyValueStore:
    return JsonFileStore(settings.data_dir)


def get_auth(
    store: KeyValueStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> AuthGate:
    return AuthGate(store, secret_key=settings.secret_key, max_age=settings.session_max_age)


def require_session(
    auth: AuthGate = Depends(get_auth),
    token: Optional[str] = Cookie(default=None, alias=AUTH_COOKIE),
) -> None:
    if not auth.is_request_authenticated(token):
        raise Unauthorized()


def set_auth_cookie(response: Response, token: str, settings: Settings):
    response.set_cookie(
        key=AUTH_COOKIE,
        value=token,
        max_age=settings.session_max_age,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )


async def _parse_body(request: Request, model: Type[M]) -> M:
    """Read the JSON body once the session check has passed."""
    try:
        body = await request.json()
    except ValueError:
        raise InvalidJSON()
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "body"
        raise InvalidJSON(f"Invalid body: {where}: {first['msg']}")


def _stored_document(store: KeyValueStore) -> Any:
    try:
        return load_dataset(store).to_wire()
    except ValidationError as exc:
        # documents written by older clients are served as they are
        logger.warning("stored dataset does not validate (%d errors), serving it raw", exc.error_count())
        return store.get(DATA_KEY)


# --- error rendering ---


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        {"error": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(e.get("type") == "json_invalid" for e in errors):
        message = InvalidJSON.message
    else:
        first = errors[0] if errors else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid field {where}: {first.get('msg', 'invalid')}" if where else InvalidJSON.message
    return JSONResponse({"error": message}, status_code=400)


# --- routes ---


def register_routes(app: FastAPI):
    @app.get("/api/auth-status")
    def auth_status(
        auth: AuthGate = Depends(get_auth),
        token: Optional[str] = Cookie(default=None, alias=AUTH_COOKIE),
    ):
        return {"authenticated": auth.is_request_authenticated(token)}

    @app.post("/api/login")
    def login(
        payload: LoginIn,
        response: Response,
        auth: AuthGate = Depends(get_auth),
        settings: Settings = Depends(get_settings),
    ):
        if not payload.password:
            raise MissingField("Password required")
        token = auth.login(payload.password)
        set_auth_cookie(response, token, settings)
        logger.info("login ok")
        return {"ok": True}

    @app.post("/api/logout")
    def logout(
        response: Response,
        auth: AuthGate = Depends(get_auth),
        settings: Settings = Depends(get_settings),
        token: Optional[str] = Cookie(default=None, alias=AUTH_COOKIE),
    ):
        if auth.is_request_authenticated(token):
            auth.revoke_sessions()
        response.delete_cookie(
            AUTH_COOKIE, path="/", secure=settings.cookie_secure, httponly=True, samesite="lax"
        )
        return {"ok": True}

    @app.post("/api/change-password", dependencies=[Depends(require_session)])
    async def change_password(
        request: Request,
        response: Response,
        auth: AuthGate = Depends(get_auth),
        settings: Settings = Depends(get_settings),
    ):
        payload = await _parse_body(request, ChangePasswordIn)
        if not payload.old_password or not payload.new_password:
            raise MissingField("oldPassword and newPassword are required")
        token = await run_in_threadpool(auth.change_password, payload.old_password, payload.new_password)
        set_auth_cookie(response, token, settings)
        return {"ok": True}

    @app.get("/api/data", dependencies=[Depends(require_session)])
    def get_data(store: KeyValueStore = Depends(get_store)):
        return _stored_document(store)

    @app.api_route("/api/data", methods=["POST", "PUT"], dependencies=[Depends(require_session)])
    async def put_data(request: Request, store: KeyValueStore = Depends(get_store)):
        dataset = await _parse_body(request, Dataset)
        save_dataset(store, dataset)
        return {"ok": True}

    @app.api_route("/api/data", methods=["DELETE", "PATCH"], dependencies=[Depends(require_session)])
    def data_method_not_allowed():
        raise MethodNotAllowed()

    @app.get("/api/export", dependencies=[Depends(require_session)])
    def export_json(store: KeyValueStore = Depends(get_store)):
        return JSONResponse(
            _stored_document(store),
            headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'},
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="LinkManager")
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    register_routes(app)

    # everything that is not an API route falls through to the frontend build
    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
    else:
        logger.info("static directory %s not found, serving API only", settings.static_dir)
    return app


app = create_app()
