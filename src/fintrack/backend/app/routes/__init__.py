"""Blueprint registrations for application routes."""

from flask import Flask

from .config import blueprint as config_blueprint
from .forecast import blueprint as forecast_blueprint
from .localization import blueprint as translations_blueprint
from .performance import blueprint as performance_blueprint
from .withholding import blueprint as withholding_blueprint


def register_routes(app: Flask) -> None:
    """Register all Flask blueprints with the provided application."""

    app.register_blueprint(config_blueprint)
    app.register_blueprint(withholding_blueprint)
    app.register_blueprint(forecast_blueprint)
    app.register_blueprint(performance_blueprint)
    app.register_blueprint(translations_blueprint)
