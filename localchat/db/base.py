"""Declarative base for the device-local tables."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass
