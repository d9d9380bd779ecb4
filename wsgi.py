"""
WSGI entry point and Flask-Migrate / Alembic CLI host.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db init       # first time only (creates migrations/)
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
    flask --app wsgi seed-compliance-templates
    flask --app wsgi seed-master-hazards
"""

from rpas_compliance import create_app

app = create_app()
