"""
Comandos del motor de liquidación
Proyecto: Liquidador de Facturas de Proveedores

Cada operación que cambia totales se expresa como un comando. La API
solo despacha comandos al SettlementEngine y devuelve su resultado.
"""

import uuid
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from app.schemas.settlement import PaymentLineIn, SettleRequest


class ApplyCreditNote(BaseModel):
    comando: Literal["apply_credit_note"] = "apply_credit_note"
    credit_note_id: uuid.UUID
    original_id: uuid.UUID


class ApplyBalance(BaseModel):
    comando: Literal["apply_balance"] = "apply_balance"
    balance_id: uuid.UUID
    invoice_id: uuid.UUID
    amount: Decimal = Field(..., gt=0)


class RecordPayment(BaseModel):
    comando: Literal["record_payment"] = "record_payment"
    invoice_id: uuid.UUID
    payment: SettleRequest


class ValidateSplit(BaseModel):
    comando: Literal["validate_split"] = "validate_split"
    target: Decimal = Field(..., ge=0)
    lineas: list[PaymentLineIn] = Field(..., min_length=1)


Command = Annotated[
    Union[ApplyCreditNote, ApplyBalance, RecordPayment, ValidateSplit],
    Field(discriminator="comando"),
]
