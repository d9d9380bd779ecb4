"""
RPAS Compliance Platform
SQLAlchemy handle shared by every model module.

Usage:
    from rpas_compliance.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
