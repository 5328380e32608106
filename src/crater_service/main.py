"""FastAPI application wiring for the crater service.

The application owns one result store and, unless disabled in settings, one
update engine running on a background thread for the life of the process.
Read endpoints are open; write endpoints require a configured user.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from crater_service.bus import connect_bus
from crater_service.config.settings import Settings, get_settings
from crater_service.engine import BusFactory, Engine, MessageHandler
from crater_service.errors import NotFoundError, StoreConnectionError, UpsertFailure
from crater_service.storage.base import ResultStore
from crater_service.storage.models import BuildResult, BuildResultKey, CustomToolchain
from crater_service.storage.postgres import PostgresResultStore

logger = logging.getLogger(__name__)


class StdIoResponse(BaseModel):
    stdout: str
    stderr: str = ""
    success: bool


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    store_override: ResultStore | None,
    bus_factory: BusFactory,
    handler: MessageHandler | None,
) -> None:
    if not hasattr(app.state, "store"):
        if store_override is None and settings.db is None:
            raise RuntimeError(
                "Missing database config. Set CRATER_DB__DATABASE_NAME, CRATER_DB__USERNAME, "
                "CRATER_DB__PASSWORD, CRATER_DB__HOST and CRATER_DB__PORT, or provide "
                "crater-web-config.json."
            )
        app.state.store = store_override or PostgresResultStore.connect(settings.db)

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "engine"):
        engine: Engine | None = None
        if settings.engine.enabled:
            try:
                engine = Engine.initialize(
                    settings.engine,
                    app.state.store,
                    handler=handler,
                    bus_factory=bus_factory,
                )
            except Exception:
                if store_override is None:
                    app.state.store.close()
                    del app.state.store
                raise
            engine.start_in_background()
        app.state.engine = engine


def _shutdown_runtime(app: FastAPI, *, owns_store: bool) -> None:
    engine: Engine | None = getattr(app.state, "engine", None)
    if engine is not None:
        engine.stop()
    store: ResultStore | None = getattr(app.state, "store", None)
    if owns_store and store is not None:
        store.close()


def create_app(
    *,
    store: ResultStore | None = None,
    settings_override: Settings | None = None,
    bus_factory: BusFactory = connect_bus,
    handler: MessageHandler | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(
            app,
            settings=settings,
            store_override=store,
            bus_factory=bus_factory,
            handler=handler,
        )
        logger.info("app event=started service=%s", settings.app_name)
        yield
        _shutdown_runtime(app, owns_store=store is None)
        logger.info("app event=stopped service=%s", settings.app_name)

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)

    def _get_store(request: Request) -> ResultStore:
        if not hasattr(request.app.state, "store"):
            _ensure_runtime_state(
                request.app,
                settings=settings,
                store_override=store,
                bus_factory=bus_factory,
                handler=handler,
            )
        return request.app.state.store

    def _require_user(user: str | None, token: str | None) -> str:
        if not settings.is_authorized(user, token):
            logger.warning("auth event=rejected user=%s", user)
            raise HTTPException(status_code=401, detail="Authentication failure")
        return str(user)

    @app.get("/health")
    def health(request: Request) -> dict[str, str]:
        engine: Engine | None = getattr(request.app.state, "engine", None)
        payload = {
            "status": "ok",
            "service": settings.app_name,
            "engine": engine.state if engine is not None else "disabled",
        }
        if engine is not None and engine.error is not None:
            payload["engine_error"] = str(engine.error)
        return payload

    @app.post("/api/v1/self-test", response_model=StdIoResponse)
    def self_test(
        x_crater_user: str | None = Header(default=None),
        x_crater_token: str | None = Header(default=None),
    ) -> StdIoResponse:
        user = _require_user(x_crater_user, x_crater_token)
        logger.info("self_test event=ok user=%s", user)
        return StdIoResponse(stdout="self-test succeeded", success=True)

    @app.get("/api/v1/build_results/{toolchain}", response_model=list[BuildResult])
    def list_build_results(toolchain: str, request: Request) -> list[BuildResult]:
        return _get_store(request).list_build_results(toolchain)

    @app.get(
        "/api/v1/build_results/{toolchain}/{crate_name}/{crate_vers}",
        response_model=BuildResult,
    )
    def get_build_result(
        toolchain: str,
        crate_name: str,
        crate_vers: str,
        request: Request,
    ) -> BuildResult:
        key = BuildResultKey(toolchain=toolchain, crate_name=crate_name, crate_vers=crate_vers)
        try:
            return _get_store(request).get_build_result(key)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail="Build result not found") from exc

    @app.put("/api/v1/build_results", response_model=BuildResult)
    def put_build_result(
        payload: BuildResult,
        request: Request,
        x_crater_user: str | None = Header(default=None),
        x_crater_token: str | None = Header(default=None),
    ) -> BuildResult:
        user = _require_user(x_crater_user, x_crater_token)
        logger.info(
            "build_result event=put user=%s toolchain=%s crate=%s vers=%s status=%s",
            user,
            payload.toolchain,
            payload.crate_name,
            payload.crate_vers,
            payload.status,
        )
        try:
            _get_store(request).upsert_build_result(payload)
        except (UpsertFailure, StoreConnectionError) as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return payload

    @app.get("/api/v1/custom_toolchains/{toolchain}", response_model=CustomToolchain)
    def get_custom_toolchain(toolchain: str, request: Request) -> CustomToolchain:
        try:
            return _get_store(request).get_custom_toolchain(toolchain)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail="Custom toolchain not found") from exc

    @app.put("/api/v1/custom_toolchains", response_model=CustomToolchain)
    def put_custom_toolchain(
        payload: CustomToolchain,
        request: Request,
        x_crater_user: str | None = Header(default=None),
        x_crater_token: str | None = Header(default=None),
    ) -> CustomToolchain:
        user = _require_user(x_crater_user, x_crater_token)
        logger.info(
            "custom_toolchain event=put user=%s toolchain=%s status=%s",
            user,
            payload.toolchain,
            payload.status,
        )
        try:
            _get_store(request).upsert_custom_toolchain(payload)
        except (UpsertFailure, StoreConnectionError) as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return payload

    return app


configure_logging(get_settings().log_level)

# Module-level app for `uvicorn crater_service.main:app`.
app = create_app()
