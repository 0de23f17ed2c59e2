"""
PM Board
Database handle shared by the models and the document store.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
