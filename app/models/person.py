"""
Person Model - only what the eligibility engine consumes
Person registration and search live outside this service; the engine reads id and birth_date.
"""

from sqlalchemy import Column, String, Date

from app.models.base import BaseModel


class Person(BaseModel):
    """Natural person applying for a license"""
    __tablename__ = "persons"

    surname = Column(String(50), nullable=False, comment="Family name/surname")
    first_name = Column(String(50), nullable=False, comment="First/given name")
    birth_date = Column(Date, nullable=True, comment="Date of birth (nullable: age checks then fail)")

    def __repr__(self):
        return f"<Person(id={self.id}, name='{self.first_name} {self.surname}')>"
