"""
CRUD operations for the fee schedule
Effective-fee lookup consumed by the fee calculator and default fee seeding
"""

from typing import List, Optional
from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import and_, or_, desc

from app.core.config import get_settings
from app.crud.base import CRUDBase
from app.models.transaction import FeeStructure, FeeType, DEFAULT_FEE_STRUCTURE
from app.schemas.fee import FeeStructureCreate, FeeStructureBase


class CRUDFeeStructure(CRUDBase[FeeStructure, FeeStructureCreate, FeeStructureBase]):
    """CRUD operations for Fee Structures"""

    def get_effective_fees(self, db: Session, date: datetime = None) -> List[FeeStructure]:
        """Get all effective fee structures for a given date"""
        if date is None:
            date = datetime.utcnow()

        return db.query(FeeStructure).filter(
            and_(
                FeeStructure.is_active == True,
                FeeStructure.effective_from <= date,
                or_(
                    FeeStructure.effective_until.is_(None),
                    FeeStructure.effective_until > date
                )
            )
        ).all()

    def get_by_fee_type(self, db: Session, fee_type: FeeType) -> Optional[FeeStructure]:
        """Get current fee structure for a specific fee type"""
        return db.query(FeeStructure).filter(
            and_(
                FeeStructure.fee_type == fee_type.value,
                FeeStructure.is_active == True
            )
        ).order_by(desc(FeeStructure.effective_from)).first()

    def initialize_default_fees(
        self, db: Session, created_by=None, effective_from: Optional[datetime] = None
    ) -> List[FeeStructure]:
        """Initialize default fee structures (existing fee types are left untouched)"""
        fee_structures = []

        for fee_type, data in DEFAULT_FEE_STRUCTURE.items():
            existing = self.get_by_fee_type(db, fee_type)
            if not existing:
                fee_structure = FeeStructure(
                    fee_type=fee_type.value,
                    display_name=data['display_name'],
                    description=data['description'],
                    amount=data['amount'],
                    applies_to_categories=data.get('applies_to_categories', []),
                    applies_to_application_types=data.get('applies_to_application_types', []),
                    is_mandatory=True,
                    is_active=True,
                    currency=get_settings().CURRENCY,
                    effective_from=effective_from or datetime.utcnow(),
                    created_by=created_by
                )
                db.add(fee_structure)
                fee_structures.append(fee_structure)

        db.commit()
        return fee_structures


fee_structure = CRUDFeeStructure(FeeStructure)
