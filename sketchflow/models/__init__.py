"""
SketchFlow
Shared SQLAlchemy handle.

The extension is bound per application in create_app(); sessions live in
the Flask app context, so no module holds connection state of its own.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
