"""Declarative base shared by all models"""
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def enum_values(enum_cls):
    """Persist a str Enum by its values rather than its member names."""
    return [e.value for e in enum_cls]
