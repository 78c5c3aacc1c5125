"""Restaurant ordering service Flask application."""

from __future__ import annotations

from typing import Optional

from flask import Flask

from config import ServiceConfig
from ordering.config import PricingConfig, load_env
from ordering.db.session import build_engine, make_session_factory
from ordering.models import Base
from ordering.services.catalog_service import MenuCatalog
from ordering.services.logging import log_event, set_level
from ordering.services.order_service import OrderService
from ordering.services.payment_service import PaymentService
from routes import admin, api


def create_app(config: Optional[ServiceConfig] = None, pricing: Optional[PricingConfig] = None) -> Flask:
    config = config or ServiceConfig.load()
    pricing = pricing or load_env()

    set_level(config.log_level)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["ORDERING_CONFIG"] = config
    app.config["PRICING_CONFIG"] = pricing

    engine = build_engine(config.database_url)
    Base.metadata.create_all(engine)
    session_factory = make_session_factory(engine)

    components = {
        "engine": engine,
        "session_factory": session_factory,
        "order_service": OrderService(session_factory, catalog=MenuCatalog(), pricing=pricing.policy()),
        "payment_service": PaymentService(session_factory),
    }
    app.extensions["ordering_components"] = components

    app.register_blueprint(api.api_bp)
    app.register_blueprint(admin.admin_bp)
    log_event("info", "app.started", database=engine.url.render_as_string(hide_password=True), currency=pricing.currency)

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=8000, debug=False)


if __name__ == "__main__":
    main()
