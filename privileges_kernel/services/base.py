"""Shared base for services that write to the privileges schema."""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from privileges_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Write-side service bound to a caller-owned session.

    Services ``flush()`` so later steps see their rows, but never commit or
    roll back.  The orchestrator decides whether a decision's approval
    record, grant flags and request status land together or not at all.
    """

    def __init__(self, session: Session):
        self.session = session
