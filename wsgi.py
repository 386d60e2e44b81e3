"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi run-job escalation_check
    gunicorn wsgi:app
"""

from fieldops import create_app

app = create_app()
