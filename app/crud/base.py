from typing import Any, Generic, Optional, Type, TypeVar
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.models.base import BaseModel as DBBaseModel

ModelType = TypeVar("ModelType", bound=DBBaseModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    Shared lookups for the engine's persisted records.
    """
    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: Any) -> Optional[ModelType]:
        """
        Get a record by ID.
        """
        return db.query(self.model).filter(self.model.id == id).first()

    def create(
        self,
        db: Session,
        *,
        obj_in: CreateSchemaType,
        created_by: Optional[UUID] = None
    ) -> ModelType:
        """
        Persist a record from its create schema and stamp the audit columns.
        """
        # model_dump keeps dates and decimals as Python objects for the column types
        db_obj = self.model(**obj_in.model_dump(), created_by=created_by, updated_by=created_by)  # type: ignore
        db.add(db_obj)
        db.commit()
        db.refresh(db_obj)
        return db_obj
