import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_login import LoginManager

from agenda.core.api_utils import register_error_handlers
from agenda.core.auth_decorators import SessionPrincipal
from agenda.core.config import (
    AppConfig,
    get_rate_limit_enabled,
    get_secret_key,
    log_config,
    utc_now,
)
from agenda.core.limiter_config import _is_test_mode, limiter
from agenda.core.logging_config import setup_logging
from agenda.domain.interfaces import IDocumentStore
from agenda.repositories import (
    BusinessRepository,
    InMemoryDocumentStore,
    LocalIdentityProvider,
    SqlDocumentStore,
    UserRepository,
)
from agenda.services.appointment_service import AppointmentService
from agenda.services.business_service import BusinessService
from agenda.services.license_scheduler import LicenseSweepScheduler
from agenda.services.license_service import LicenseService
from agenda.services.notification_service import NotificationService
from agenda.services.realtime_license_service import RealTimeLicenseService
from agenda.services.record_service import DigitalRecordService
from agenda.services.session_service import SessionRegistry, UserSession

logger = logging.getLogger(__name__)

# Load environment variables conditionally
# Only load from .env when DATABASE_URL is not already defined by the environment
if not os.getenv("DATABASE_URL"):
    load_dotenv()


@dataclass
class AgendaServices:
    """Everything a request handler needs, built once per application."""

    config: AppConfig
    store: IDocumentStore
    clock: Callable[[], datetime]
    user_repo: UserRepository
    business_repo: BusinessRepository
    identity_provider: LocalIdentityProvider
    license_service: LicenseService
    license_monitor: RealTimeLicenseService
    notification_service: NotificationService
    record_service: DigitalRecordService
    appointment_service: AppointmentService
    business_service: BusinessService
    sessions: SessionRegistry = field(default_factory=SessionRegistry)
    scheduler: Optional[LicenseSweepScheduler] = None

    def new_session(self) -> UserSession:
        return UserSession(
            self.store,
            self.identity_provider,
            license_monitor=self.license_monitor,
            record_service=self.record_service,
            notification_service=self.notification_service,
            business_repo=self.business_repo,
            user_repo=self.user_repo,
            config=self.config,
            clock=self.clock,
            appointment_service=self.appointment_service,
        )


def build_store(config: AppConfig) -> IDocumentStore:
    """Document store selected by STORE_BACKEND (``memory`` or ``sql``)."""
    if config.store_backend == "sql":
        from agenda.db import create_session_factory, create_store_engine, create_tables

        engine = create_store_engine(config.database_url)
        create_tables(engine)
        return SqlDocumentStore(create_session_factory(engine))
    return InMemoryDocumentStore()


def build_services(
    store: IDocumentStore,
    config: AppConfig,
    clock: Callable[[], datetime] = utc_now,
) -> AgendaServices:
    user_repo = UserRepository(store)
    business_repo = BusinessRepository(store)
    license_monitor = RealTimeLicenseService(store, clock)
    return AgendaServices(
        config=config,
        store=store,
        clock=clock,
        user_repo=user_repo,
        business_repo=business_repo,
        identity_provider=LocalIdentityProvider(store),
        license_service=LicenseService(store, user_repo, business_repo, clock=clock),
        license_monitor=license_monitor,
        notification_service=NotificationService(
            store, clock, admin_email=config.admin_email
        ),
        record_service=DigitalRecordService(store, clock),
        appointment_service=AppointmentService(
            store, clock, license_monitor=license_monitor
        ),
        business_service=BusinessService(store, clock),
        sessions=SessionRegistry(
            idle_timeout=timedelta(seconds=config.session_idle_timeout), clock=clock
        ),
    )


def init_sentry(env: str, store_backend: str) -> bool:
    """Initialise Sentry error tracking when SENTRY_DSN is set."""
    sentry_dsn = os.getenv("SENTRY_DSN")
    if not sentry_dsn:
        logger.info(
            "Sentry not initialized (SENTRY_DSN not set)",
            extra={"context": {"environment": env}},
        )
        return False

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration

    integrations = [FlaskIntegration()]
    if store_backend == "sql":
        from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

        integrations.append(SqlalchemyIntegration())

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=env,
        release=os.getenv("GIT_SHA", "unknown"),
        integrations=integrations,
        traces_sample_rate=0.1,
        send_default_pii=False,
    )
    logger.info(
        "Sentry initialized",
        extra={"context": {"environment": env, "release": os.getenv("GIT_SHA", "unknown")}},
    )
    return True


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[IDocumentStore] = None,
    clock: Optional[Callable[[], datetime]] = None,
    config_overrides: Optional[Dict[str, Any]] = None,
) -> Flask:
    config = config or AppConfig.from_env()
    is_production = os.getenv("FLASK_ENV") == "production"

    app = Flask(__name__)
    app.config["SECRET_KEY"] = get_secret_key()
    app.config["TESTING"] = config.testing
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(seconds=config.session_idle_timeout)
    if config_overrides:
        app.config.update(config_overrides)

    # Configure structured logging (after app creation so we can register hooks)
    setup_logging(
        app=app,
        log_level=logging.INFO if is_production else logging.DEBUG,
        enable_sql_echo=config.store_backend == "sql" and not is_production,
        log_to_file=os.getenv("LOG_TO_FILE", "0") == "1",
        use_json_format=is_production,
    )

    init_sentry("production" if is_production else "development", config.store_backend)

    services = build_services(store or build_store(config), config, clock or utc_now)
    app.extensions["agenda"] = services

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.unauthorized_handler
    def unauthorized():
        return (
            jsonify({"error": "Unauthorized", "message": "Authentication required"}),
            401,
        )

    @login_manager.user_loader
    def load_user(user_id):
        session = services.sessions.get(user_id)
        if session is None:
            return None
        if session.current_user is None:
            services.sessions.discard(user_id)
            return None
        return SessionPrincipal(session)

    @app.before_request
    def release_idle_sessions():
        services.sessions.evict_idle()

    limiter.init_app(app)
    if not get_rate_limit_enabled() or _is_test_mode() or app.config.get("TESTING"):
        limiter.enabled = False
        logger.info(
            "Rate limiting disabled", extra={"context": {"test_mode": config.testing}}
        )

    register_error_handlers(app)

    from agenda.controllers.appointment_controller import appointment_bp
    from agenda.controllers.auth_controller import auth_bp
    from agenda.controllers.business_controller import business_bp
    from agenda.controllers.health_controller import health_bp
    from agenda.controllers.license_controller import license_bp
    from agenda.controllers.notification_controller import notification_bp
    from agenda.controllers.record_controller import record_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(license_bp)
    app.register_blueprint(business_bp)
    app.register_blueprint(appointment_bp)
    app.register_blueprint(record_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    scheduler = LicenseSweepScheduler(
        services.license_service,
        interval_seconds=config.license_sweep_interval,
        disabled=config.license_sweep_disabled or config.testing,
        notification_service=services.notification_service,
    )
    services.scheduler = scheduler
    scheduler.start()

    log_config(config)
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", "5000")))
