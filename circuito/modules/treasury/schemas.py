from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from uuid import UUID


class TreasuryAccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Ej: Banco Galicia CC, Caja, Valores a depositar")
    account_code: str = Field(..., pattern=r"^\d{6}$", description="Cuenta del plan contable")
    currency: str = Field("ARS", pattern=r"^(ARS|USD)$")


class TreasuryAccountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


class TreasuryAccountOut(BaseModel):
    id: UUID
    name: str
    account_code: str
    currency: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)
