"""
Bundle and register all blueprints with the Flask app.
"""
from flask import Flask
from . import sessions

def register_blueprints(app: Flask) -> None:
    app.register_blueprint(sessions.bp)
