"""Shared Flask-SQLAlchemy handle. Sessions are scoped to the app context."""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
