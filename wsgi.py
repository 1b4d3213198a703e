"""
WSGI entry point and Flask-Migrate target.

Usage:
    flask --app wsgi db upgrade
    gunicorn wsgi:app
"""

from governance import create_app

app = create_app()
