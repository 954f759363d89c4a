"""Flask entrypoint for the YouTube series audit API."""

from __future__ import annotations

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge
from werkzeug.middleware.proxy_fix import ProxyFix

from web.config import AppConfig
from web.db import init_db
from web.routes.api import api_bp
from web.routes.internal import internal_bp


def create_app() -> Flask:
    app = Flask(__name__)

    config = AppConfig.from_env()
    app.config.update(config.to_flask_config())

    init_db(app)

    app.register_blueprint(api_bp)
    app.register_blueprint(internal_bp)

    @app.errorhandler(RequestEntityTooLarge)
    def upload_too_large(exc: RequestEntityTooLarge):
        limit_mb = app.config["MAX_CONTENT_LENGTH"] // (1024 * 1024)
        return jsonify({"error": exc.name, "detail": f"Exports are limited to {limit_mb} MB"}), exc.code

    @app.errorhandler(HTTPException)
    def json_http_error(exc: HTTPException):
        return jsonify({"error": exc.name, "detail": exc.description}), exc.code

    @app.get("/healthz")
    def healthz():
        return jsonify(
            {
                "status": "ok",
                "env": app.config.get("APP_ENV", "development"),
                "ai_detection": bool(app.config.get("ANTHROPIC_API_KEY")),
                "channel_fetch": bool(app.config.get("YOUTUBE_API_KEY")),
            }
        )

    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)
    return app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8080, debug=app.config.get("APP_ENV") != "production")
