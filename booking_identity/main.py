"""FastAPI application wiring for the booking identity service."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import register_exception_handlers
from .api.routes import router as auth_router
from .api.users import router as users_router
from .config import Settings, get_settings
from .domain.contracts import AccountStore
from .domain.service import AccountService, Mailer
from .domain.sessions import SessionManager
from .logging_config import configure_logging
from .notifications.mailer import EmailSender
from .repository import AccountRepository
from .security.authorization import AuthorizationGate
from .security.one_time_tokens import PasswordResetTokenManager, VerificationTokenManager
from .security.passwords import CredentialStore
from .security.rate_limiter import RateLimiter, build_rate_limiter
from .security.tokens import TokenIssuer


def wire_services(
    app: FastAPI,
    settings: Settings,
    repository: AccountStore,
    *,
    mailer: Mailer | None = None,
    rate_limiter: RateLimiter | None = None,
) -> AccountService:
    """Construct every identity component from ``settings`` and attach them to ``app.state``."""
    credentials = CredentialStore(rounds=settings.bcrypt_rounds)
    issuer = TokenIssuer(settings)
    service = AccountService(
        repository,
        credentials,
        SessionManager(repository, issuer),
        VerificationTokenManager(repository, ttl_seconds=settings.email_verification_ttl_seconds),
        PasswordResetTokenManager(repository, credentials, ttl_seconds=settings.password_reset_ttl_seconds),
        mailer or EmailSender(settings),
    )
    app.state.account_service = service
    app.state.authorization_gate = AuthorizationGate(issuer)
    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings)
    return service


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the ASGI application; the Postgres pool lives for the app lifespan."""
    settings = (settings or get_settings()).validate()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        pool = ConnectionPool(settings.database_url, open=False)
        pool.open()
        repository = AccountRepository(pool)
        if settings.auto_create_schema:
            repository.create_schema()
        app.state.pool = pool
        wire_services(app, settings, repository)
        try:
            yield
        finally:
            pool.close()

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )
    register_exception_handlers(app)

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        """Return a minimal readiness indicator used by orchestration systems."""
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(auth_router)
    app.include_router(users_router)
    return app
