"""Controlled vocabulary ORM model."""

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from survey_import.models.base import Base, CreatedAtMixin, IdMixin


class Vocabulary(Base, IdMixin, CreatedAtMixin):
    """Versioned set of valid codes for one coded field."""

    __tablename__ = "vocabularies"

    name: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    version: Mapped[str] = mapped_column(String(32), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    codes_json: Mapped[list[int]] = mapped_column(JSON, default=list, nullable=False)
