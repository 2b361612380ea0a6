"""Shared base for read-only query objects."""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from privileges_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Runs queries on the caller's session and hands back frozen DTOs, never ORM rows."""

    def __init__(self, session: Session):
        self.session = session
