"""
Esquemas Pydantic para Clientes

El CUIT se valida con dígito verificador y se guarda formateado
(XX-XXXXXXXX-X).
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from enum import Enum

from circuito.common.validators import format_cuit, validate_cuit


class TaxCondition(str, Enum):
    RESPONSABLE_INSCRIPTO = "RESPONSABLE_INSCRIPTO"
    MONOTRIBUTO = "MONOTRIBUTO"
    EXENTO = "EXENTO"
    CONSUMIDOR_FINAL = "CONSUMIDOR_FINAL"


class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Nombre de fantasía")
    business_name: Optional[str] = Field(None, max_length=200, description="Razón social")
    cuit: Optional[str] = Field(None, description="CUIT con o sin guiones")
    tax_condition: TaxCondition = TaxCondition.RESPONSABLE_INSCRIPTO
    email: Optional[str] = Field(None, max_length=100)

    @field_validator('cuit')
    @classmethod
    def check_cuit(cls, v):
        if v is None or v.strip() == "":
            return None
        if not validate_cuit(v):
            raise ValueError('CUIT inválido. Use el formato XX-XXXXXXXX-X con dígito verificador correcto')
        return format_cuit(v)

    @field_validator('email')
    @classmethod
    def check_email(cls, v):
        if v and v.strip():
            import re
            pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
            if not re.match(pattern, v):
                raise ValueError('Email debe tener formato válido')
        return v


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    business_name: Optional[str] = Field(None, max_length=200)
    cuit: Optional[str] = None
    tax_condition: Optional[TaxCondition] = None
    email: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None

    @field_validator('cuit')
    @classmethod
    def check_cuit(cls, v):
        if v is None or v.strip() == "":
            return None
        if not validate_cuit(v):
            raise ValueError('CUIT inválido')
        return format_cuit(v)


class CustomerOut(BaseModel):
    id: UUID
    name: str
    business_name: Optional[str] = None
    cuit: Optional[str] = None
    tax_condition: str
    email: Optional[str] = None
    balance: Decimal
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CustomerSummary(BaseModel):
    """Cuenta corriente del cliente más la consulta informativa al BCRA"""
    customer: CustomerOut
    open_invoices: int
    open_balance: Decimal
    draft_receipts: int
    credit_report: Optional[Dict[str, Any]] = None
    warnings: List[str] = []
