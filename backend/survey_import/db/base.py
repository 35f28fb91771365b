"""SQLAlchemy metadata registry import for Alembic."""

from survey_import.models import Conflict, ImportPackage, Vocabulary
from survey_import.models.base import Base

__all__ = ["Base", "ImportPackage", "Conflict", "Vocabulary"]
