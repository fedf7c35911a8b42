"""
Schemas Pydantic del Liquidador de Facturas

Validación de entrada y serialización de respuestas del API, más el
libro de ajustes y los comandos del motor de liquidación.
"""

from app.schemas.adjustment_ledger import (
    AdjustmentLedger,
    BalanceAppliedRecord,
    CreditFold,
    CreditNoteRecord,
)
from app.schemas.balance import (
    BalanceApplicationRead,
    BalanceApplicationResult,
    BalanceApplyRequest,
    BalanceBatchApplicationResult,
    BalanceBatchApplyRequest,
    BalanceCreate,
    BalanceRead,
    EstadoSaldo,
    MotivoSaldo,
    SupplierBalanceSummary,
)
from app.schemas.commands import (
    ApplyBalance,
    ApplyCreditNote,
    Command,
    RecordPayment,
    ValidateSplit,
)
from app.schemas.invoice import (
    Clasificacion,
    CreditNoteApply,
    CreditNoteApplyResult,
    CreditNoteGroups,
    CreditNoteSummary,
    DiscountItem,
    DiscountsUpdate,
    EstadoMercancia,
    EstadoNotaCredito,
    InvoiceClassification,
    InvoiceCreate,
    InvoiceFinancials,
    InvoiceList,
    InvoiceRead,
    InvoiceValorReal,
    TipoDescuento,
    ValorRealBreakdown,
)
from app.schemas.settlement import (
    BatchOutcomeStatus,
    BatchPreview,
    BatchPreviewLine,
    BatchPreviewRequest,
    BatchSettleOutcome,
    BatchSettleRequest,
    BatchSettleResult,
    PaymentLineIn,
    RecomputeResult,
    SettlementResult,
    SettleRequest,
    SplitPaymentLineRead,
    SplitValidationRequest,
    SplitValidationResult,
)

__all__ = [
    # Libro de ajustes
    "AdjustmentLedger",
    "BalanceAppliedRecord",
    "CreditFold",
    "CreditNoteRecord",
    # Saldos
    "BalanceApplicationRead",
    "BalanceApplicationResult",
    "BalanceApplyRequest",
    "BalanceBatchApplicationResult",
    "BalanceBatchApplyRequest",
    "BalanceCreate",
    "BalanceRead",
    "EstadoSaldo",
    "MotivoSaldo",
    "SupplierBalanceSummary",
    # Comandos
    "ApplyBalance",
    "ApplyCreditNote",
    "Command",
    "RecordPayment",
    "ValidateSplit",
    # Facturas
    "Clasificacion",
    "CreditNoteApply",
    "CreditNoteApplyResult",
    "CreditNoteGroups",
    "CreditNoteSummary",
    "DiscountItem",
    "DiscountsUpdate",
    "EstadoMercancia",
    "EstadoNotaCredito",
    "InvoiceClassification",
    "InvoiceCreate",
    "InvoiceFinancials",
    "InvoiceList",
    "InvoiceRead",
    "InvoiceValorReal",
    "TipoDescuento",
    "ValorRealBreakdown",
    # Liquidación
    "BatchOutcomeStatus",
    "BatchPreview",
    "BatchPreviewLine",
    "BatchPreviewRequest",
    "BatchSettleOutcome",
    "BatchSettleRequest",
    "BatchSettleResult",
    "PaymentLineIn",
    "RecomputeResult",
    "SettlementResult",
    "SettleRequest",
    "SplitPaymentLineRead",
    "SplitValidationRequest",
    "SplitValidationResult",
]
