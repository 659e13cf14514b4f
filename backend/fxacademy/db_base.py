"""
Declarative base shared by every FX Academy model.

Kept apart from fxacademy.models so scripts and the session module can
import it without loading the model modules.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
