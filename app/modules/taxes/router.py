from fastapi import APIRouter, Depends, status
from uuid import UUID

from app.dependencies.dbDependecies import db_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.taxes.crud import TaxRuleCrud
from app.modules.taxes.service import TaxRuleService
from app.modules.taxes.schemas import TaxRuleCreate, TaxRuleUpdate, TaxRuleOut, TaxRuleList

taxes_router = APIRouter(prefix="/taxes", tags=["Taxes"])


def get_tax_rule_service(db: db_dependency) -> TaxRuleService:
    return TaxRuleService(TaxRuleCrud(db))


@taxes_router.get("/", response_model=TaxRuleList)
def list_tax_rules(
    service: TaxRuleService = Depends(get_tax_rule_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Listar reglas de impuesto por provincia
    """
    return service.get_tax_rules()


@taxes_router.post("/", response_model=TaxRuleOut, status_code=status.HTTP_201_CREATED)
def create_tax_rule(
    tax_data: TaxRuleCreate,
    service: TaxRuleService = Depends(get_tax_rule_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """
    Crear una regla de impuesto

    Solo administradores. La provincia debe ser única.
    """
    return service.create_tax_rule(tax_data)


@taxes_router.get("/{tax_rule_id}", response_model=TaxRuleOut)
def get_tax_rule(
    tax_rule_id: UUID,
    service: TaxRuleService = Depends(get_tax_rule_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return service.get_tax_rule(tax_rule_id)


@taxes_router.put("/{tax_rule_id}", response_model=TaxRuleOut)
def update_tax_rule(
    tax_rule_id: UUID,
    tax_update: TaxRuleUpdate,
    service: TaxRuleService = Depends(get_tax_rule_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """
    Actualizar una regla de impuesto

    Las facturas existentes conservan sus totales; solo las nuevas o las
    que se editen con ítems o tax_rule_id usan el porcentaje actualizado.
    """
    return service.update_tax_rule(tax_rule_id, tax_update)


@taxes_router.delete("/{tax_rule_id}")
def delete_tax_rule(
    tax_rule_id: UUID,
    service: TaxRuleService = Depends(get_tax_rule_service),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    return service.delete_tax_rule(tax_rule_id)
