from sqlalchemy import Column, String, Boolean, Numeric, CheckConstraint
from app.database.database import Base
from app.common.mixins import BaseMixin


class TaxRule(Base, BaseMixin):
    """Porcentaje de impuesto aplicable por provincia (jurisdicción)"""
    __tablename__ = "tax_rules"

    province = Column(String(100), unique=True, nullable=False, index=True)
    percentage = Column(Numeric(5, 2), nullable=False)  # 0 - 100
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("percentage >= 0 AND percentage <= 100", name="ck_tax_rule_percentage_range"),
    )
