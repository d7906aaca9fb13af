"""Application factory wiring Flask extensions, blueprints and CLI commands."""

from __future__ import annotations

from flask import Flask

from identity_service.core.config import BaseConfig, get_config
from identity_service.core.logger import configure_logging
from identity_service.core.logger import init_app as init_logging


def create_app(
    config: str | type[BaseConfig] | object | None = None,
    *,
    instance_relative_config: bool = True,
    instance_config_filename: str = "config.py",
) -> Flask:
    """Build and configure the Flask application.

    :param config: Config object, class or import path; defaults to the
        class selected by ``APP_ENV``.
    :param instance_relative_config: Load overrides from the instance folder.
    :param instance_config_filename: File read from the instance folder, if present.
    :returns: Configured application with the registration saga wired in.
    :rtype: flask.Flask
    """

    app = Flask(__name__, instance_relative_config=instance_relative_config)

    app.config.from_object(get_config() if config is None else config)
    if instance_relative_config and instance_config_filename:
        app.config.from_pyfile(instance_config_filename, silent=True)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    from identity_service.core import extensions

    extensions.init_app(app)

    init_logging(app)

    from identity_service.api import init_app as init_api

    init_api(app)

    from identity_service.core import errors

    errors.init_app(app)

    from identity_service import cli as app_cli

    app_cli.init_app(app)

    return app
