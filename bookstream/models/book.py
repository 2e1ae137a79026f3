"""Book catalogue entry referenced by loans"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime

from bookstream.core.clock import utcnow
from bookstream.db.base import Base


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    title = Column(String(500), nullable=False)
    author = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Book(id={self.id}, title='{self.title[:30]}')>"
