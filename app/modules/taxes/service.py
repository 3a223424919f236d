from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from app.modules.taxes.crud import TaxRuleCrud
from app.modules.taxes.models import TaxRule
from app.modules.taxes.schemas import TaxRuleCreate, TaxRuleUpdate

logger = logging.getLogger(__name__)


class TaxRuleService:
    def __init__(self, crud: TaxRuleCrud):
        self.crud = crud

    def create_tax_rule(self, tax_data: TaxRuleCreate) -> TaxRule:
        """Crear una regla de impuesto para una provincia"""
        try:
            if self.crud.get_by_province(tax_data.province):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"A tax rule for province '{tax_data.province}' already exists"
                )

            tax_rule = self.crud.create(tax_data.model_dump())
            self.crud.commit()
            self.crud.refresh(tax_rule)
            logger.info(f"Tax rule created for {tax_rule.province}: {tax_rule.percentage}%")
            return tax_rule

        except HTTPException:
            raise
        except IntegrityError:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"A tax rule for province '{tax_data.province}' already exists"
            )
        except Exception as e:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creating tax rule: {str(e)}"
            )

    def get_tax_rules(self) -> dict:
        """Listar todas las reglas de impuesto"""
        tax_rules = self.crud.get_all()
        return {"tax_rules": tax_rules, "total": len(tax_rules)}

    def get_tax_rule(self, tax_rule_id: UUID) -> TaxRule:
        """Obtener una regla de impuesto específica"""
        tax_rule = self.crud.get_by_id(tax_rule_id)
        if not tax_rule:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Tax rule not found"
            )
        return tax_rule

    def update_tax_rule(self, tax_rule_id: UUID, tax_update: TaxRuleUpdate) -> TaxRule:
        """Actualizar una regla de impuesto"""
        try:
            tax_rule = self.get_tax_rule(tax_rule_id)
            changes = tax_update.model_dump(exclude_unset=True)

            new_province = changes.get("province")
            if new_province and new_province != tax_rule.province:
                if self.crud.get_by_province(new_province):
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail=f"A tax rule for province '{new_province}' already exists"
                    )

            for field, value in changes.items():
                if value is not None:
                    setattr(tax_rule, field, value)

            self.crud.commit()
            self.crud.refresh(tax_rule)
            return tax_rule

        except HTTPException:
            raise
        except IntegrityError:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A tax rule for that province already exists"
            )
        except Exception as e:
            self.crud.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error updating tax rule: {str(e)}"
            )

    def delete_tax_rule(self, tax_rule_id: UUID) -> dict:
        """Eliminar una regla de impuesto"""
        tax_rule = self.get_tax_rule(tax_rule_id)
        try:
            self.crud.delete(tax_rule)
            self.crud.commit()
            return {"message": "Tax rule deleted"}
        except Exception as e:
            self.crud.rollback()
            logger.error(f"Error deleting tax rule {tax_rule_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot delete tax rule. It may be referenced by other records."
            )

    def resolve_for_invoice(self, tax_rule_id: Optional[UUID], province: str) -> TaxRule:
        """
        Resolver la regla de impuesto de una factura

        Un tax_rule_id explícito tiene prioridad; si no se envía se usa la
        regla activa de la provincia de la sucursal.
        """
        if tax_rule_id is not None:
            return self.get_tax_rule(tax_rule_id)

        tax_rule = self.crud.get_by_province(province, only_active=True)
        if not tax_rule:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Tax rule not found for province: {province}"
            )
        return tax_rule


# Tasas provinciales de Canadá (GST/HST/PST combinados), usar en seeds
DEFAULT_TAX_RULES = [
    {"province": "AB", "percentage": Decimal("5.00")},
    {"province": "BC", "percentage": Decimal("12.00")},
    {"province": "MB", "percentage": Decimal("12.00")},
    {"province": "NB", "percentage": Decimal("15.00")},
    {"province": "NL", "percentage": Decimal("15.00")},
    {"province": "NS", "percentage": Decimal("14.00")},
    {"province": "NT", "percentage": Decimal("5.00")},
    {"province": "NU", "percentage": Decimal("5.00")},
    {"province": "ON", "percentage": Decimal("13.00")},
    {"province": "PE", "percentage": Decimal("15.00")},
    {"province": "QC", "percentage": Decimal("14.98")},
    {"province": "SK", "percentage": Decimal("11.00")},
    {"province": "YT", "percentage": Decimal("5.00")},
]


def create_default_tax_rules(db: Session) -> List[TaxRule]:
    """Crear las reglas de impuesto por defecto si no existen"""
    crud = TaxRuleCrud(db)
    created = []
    for rule_data in DEFAULT_TAX_RULES:
        if not crud.get_by_province(rule_data["province"]):
            created.append(crud.create(dict(rule_data, is_active=True)))
    db.commit()
    return created
