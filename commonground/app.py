# commonground/app.py
import logging, os
from flask import Flask, jsonify
from flask_cors import CORS

from commonground.api import register_blueprints
from commonground.isochrones import CachedIsochroneProvider, MapboxIsochroneProvider
from commonground.sessions import ConstraintSetManager

# --- factory --------------------------------------------------------------
def create_app(manager: "ConstraintSetManager | None" = None) -> Flask:
    app = Flask(__name__)
    CORS(app)

    if manager is None:
        provider = CachedIsochroneProvider(MapboxIsochroneProvider())
        manager  = ConstraintSetManager(provider)
    app.extensions["commonground"] = manager
    register_blueprints(app)

    @app.get("/health")
    def health():
        return jsonify({"status": "ok"}), 200

    return app

# --------------------------------------------------------------------------
app = create_app()         # ← Gunicorn expects this symbol

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s %(message)s")
    debug = os.environ.get("FLASK_ENV") != "production"
    host  = "127.0.0.1" if debug else "0.0.0.0"
    app.run(debug=debug, host=host, port=5000)
