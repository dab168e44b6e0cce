"""
Journey Map Platform entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
    flask --app wsgi seed-journey-templates

APP_ENV selects the configuration (development | testing | production).
"""

from app import create_app

app = create_app()
