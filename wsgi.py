"""
WSGI entry point.

Usage:
    flask --app wsgi run
    flask --app wsgi seed-db data.json
    gunicorn wsgi:app
"""

from pmboard import create_app

app = create_app()
