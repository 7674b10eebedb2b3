"""
WSGI / Flask-Migrate entry point.

Usage:
    FLASK_APP=wsgi.py flask db upgrade
    FLASK_APP=wsgi.py flask seed-template-assessment --user admin
    gunicorn wsgi:app
"""

from gcg_platform import create_app

app = create_app()
