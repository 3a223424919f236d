"""
Operaciones de base de datos para reglas de impuesto
"""

from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.modules.taxes.models import TaxRule


class TaxRuleCrud:
    """Operaciones CRUD para reglas de impuesto"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, tax_rule_id: UUID) -> Optional[TaxRule]:
        return self.db.query(TaxRule).filter(TaxRule.id == tax_rule_id).first()

    def get_by_province(self, province: str, only_active: bool = False) -> Optional[TaxRule]:
        query = self.db.query(TaxRule).filter(TaxRule.province == province)
        if only_active:
            query = query.filter(TaxRule.is_active.is_(True))
        return query.first()

    def get_all(self) -> List[TaxRule]:
        return self.db.query(TaxRule).order_by(TaxRule.province).all()

    def create(self, data: dict) -> TaxRule:
        tax_rule = TaxRule(**data)
        self.db.add(tax_rule)
        self.db.flush()
        return tax_rule

    def delete(self, tax_rule: TaxRule) -> None:
        self.db.delete(tax_rule)
        self.db.flush()

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, instance) -> None:
        self.db.refresh(instance)
