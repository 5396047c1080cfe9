"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi migrate-process <process_instance_id>
"""

from makerchecker import create_app

app = create_app()
