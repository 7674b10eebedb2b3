"""
GCG Assessment Platform
SQLAlchemy database handle shared by every model module.

The handle is created once here and bound to the Flask app in
``create_app``; services receive ``db.session`` through their constructors.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
