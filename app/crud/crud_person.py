"""
CRUD operations for Person lookup
The engine only needs the applicant's id and birth date
"""

from typing import Optional
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from app.crud.base import CRUDBase
from app.models.person import Person
from app.schemas.person import PersonCreate


class CRUDPerson(CRUDBase[Person, PersonCreate, PersonCreate]):
    """CRUD operations for Person"""

    def get_birth_date(self, db: Session, *, person_id: UUID) -> Optional[date]:
        """Birth date of a person; ValueError when the person does not exist"""
        person = self.get(db, id=person_id)
        if not person:
            raise ValueError("Person not found")
        return person.birth_date


person = CRUDPerson(Person)
