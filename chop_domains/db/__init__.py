"""Database engine, session factory and declarative base."""

from .base import Base
from .session import create_engine, create_sessionmaker, init_models

__all__ = ["Base", "create_engine", "create_sessionmaker", "init_models"]
