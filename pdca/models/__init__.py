"""
PDCA Action Tracker
Database models package.

The shared ``db`` instance is bound to the app in ``pdca.create_app``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
