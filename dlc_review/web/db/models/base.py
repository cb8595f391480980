from datetime import datetime, timezone
from uuid import uuid4

from dlc_review.web.db import db


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class BaseModel(db.Model):
    __abstract__ = True

    @classmethod
    def create(cls, commit: bool = True, **kwargs):
        instance = cls(**kwargs)
        return instance.save(commit=commit)

    @classmethod
    def find_by(cls, **kwargs):
        return db.session.execute(
            db.select(cls).filter_by(**kwargs)
        ).scalars().first()

    @classmethod
    def get(cls, id):
        return db.session.get(cls, id)

    @classmethod
    def where(cls, **kwargs):
        return db.session.execute(
            db.select(cls).filter_by(**kwargs)
        ).scalars().all()

    def save(self, commit: bool = True):
        db.session.add(self)
        if commit:
            db.session.commit()
        return self

    def update(self, commit: bool = True, **kwargs):
        for attr, value in kwargs.items():
            setattr(self, attr, value)
        return self.save(commit=commit)

    def delete(self, commit: bool = True):
        db.session.delete(self)
        if commit:
            db.session.commit()
