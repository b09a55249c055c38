# enrollment/crud/base.py
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from enrollment.db.base_class import Base

ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """
    Read helpers shared by every model.

    Writes are done by the services inside their own unit of work, so nothing
    here commits.
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id).first()

    def add(self, db: Session, *, db_obj: ModelType) -> ModelType:
        """Stage a new row and flush so defaults and constraints apply now."""
        db.add(db_obj)
        db.flush()
        return db_obj
