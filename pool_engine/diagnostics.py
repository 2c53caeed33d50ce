"""Non-fatal diagnostics reported alongside engine results."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class DiagnosticCategory(Enum):
    DATA_QUALITY = "data_quality"
    CONSISTENCY = "consistency"


class DiagnosticCode(Enum):
    INVALID_TIMESTAMP = "invalid_timestamp"
    INVALID_AMOUNT = "invalid_amount"
    NEGATIVE_AMOUNT = "negative_amount"
    NEGATIVE_FEE = "negative_fee"
    POOL_TYPE_MISMATCH = "pool_type_mismatch"
    MISSING_INVESTOR_ID = "missing_investor_id"
    DUPLICATE_INVESTOR = "duplicate_investor"
    ORPHANED_WITHDRAWAL = "orphaned_withdrawal"
    AMBIGUOUS_WITHDRAWAL = "ambiguous_withdrawal"
    DEPOSIT_TOTAL_MISMATCH = "deposit_total_mismatch"
    WITHDRAWAL_EXCEEDS_BALANCE = "withdrawal_exceeds_balance"
    CONSERVATION_MISMATCH = "conservation_mismatch"

    @property
    def category(self) -> DiagnosticCategory:
        if self in _CONSISTENCY_CODES:
            return DiagnosticCategory.CONSISTENCY
        return DiagnosticCategory.DATA_QUALITY

    @property
    def excludes_record(self) -> bool:
        """Data-quality problems drop the offending record from the replay."""

        return self.category == DiagnosticCategory.DATA_QUALITY


_CONSISTENCY_CODES = frozenset(
    {
        DiagnosticCode.DEPOSIT_TOTAL_MISMATCH,
        DiagnosticCode.WITHDRAWAL_EXCEEDS_BALANCE,
        DiagnosticCode.CONSERVATION_MISMATCH,
    }
)


@dataclass(frozen=True)
class Diagnostic:
    code: DiagnosticCode
    message: str
    record_type: str
    record_ref: Optional[str] = None

    @property
    def category(self) -> DiagnosticCategory:
        return self.code.category

    def to_dict(self) -> Dict[str, object]:
        return {
            "code": self.code.value,
            "category": self.category.value,
            "record_type": self.record_type,
            "record_ref": self.record_ref,
            "message": self.message,
        }
