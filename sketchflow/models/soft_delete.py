"""
Soft delete mixin for directory records.

Models that include this mixin are marked as deleted rather than removed.
Reads through ``select_active()`` never see deleted rows.

Usage:
    class DraftingCenter(SoftDeleteMixin, db.Model):
        ...

    center.soft_delete()
    db.session.commit()

    db.session.execute(DraftingCenter.select_active()).scalars().all()
"""

from datetime import datetime, timezone

from sqlalchemy import select

from sketchflow.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime, nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def select_active(cls):
        """Return a select() that excludes soft-deleted records."""
        return select(cls).where(cls.deleted_at.is_(None))

    @classmethod
    def get_active(cls, pk):
        """Fetch by primary key, treating a soft-deleted row as missing."""
        obj = db.session.get(cls, pk)
        if obj is None or obj.is_deleted:
            return None
        return obj
