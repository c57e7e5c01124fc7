from flask import Flask, jsonify

from config import Config
from routes import reconciliation


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    app.json.sort_keys = app.config.get("JSON_SORT_KEYS", False)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    app.register_blueprint(reconciliation.bp)

    @app.get("/api/health")
    def health(): return jsonify({"ok": True})

    return app


app = create_app()
