"""Candidate extraction results shared by the heuristic and AI extractors.

The same models are the output schema sent to the inference service, so
they are strict: unknown keys are rejected, money must be a plain JSON
number (never an Argentine-formatted string) and counts must be integers.
"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictInt

from aportes.utils.money import round_amount


class DocumentKind(str, Enum):
    """Supported document kinds."""

    ROSTER = "roster"
    TRANSFER = "transfer"


class PdfType(str, Enum):
    """Ledger classification of a stored PDF."""

    SUELDO = "SUELDO"
    FOPID = "FOPID"
    COMPROBANTE = "COMPROBANTE"


def _money_from_number(value):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise ValueError("amount must be a plain number without thousands separators")
    return round_amount(value)


Money = Annotated[Decimal, BeforeValidator(_money_from_number)]


class _Strict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class InstitutionBlock(_Strict):
    name: Optional[str] = None
    address: Optional[str] = None
    cuit: Optional[str] = None


class RosterPerson(_Strict):
    name: str = Field(..., min_length=1)
    gross_amount: Optional[Money] = Field(default=None, description="Total remunerativo")
    quantity: Optional[StrictInt] = Field(default=None, ge=0, description="Cantidad de legajos")
    fee_amount: Money = Field(..., description="Monto del concepto")


class RosterTotals(_Strict):
    people_count: StrictInt = Field(..., ge=0)
    total_amount: Money


class RosterExtraction(_Strict):
    """A contribution roster ("listado de aportes")."""

    kind: Literal["roster"] = "roster"
    institution: InstitutionBlock = Field(default_factory=InstitutionBlock)
    date: Optional[str] = None
    period: Optional[str] = Field(default=None, description="MM/YYYY or FOPID")
    concept: Optional[str] = None
    persons: List[RosterPerson] = Field(default_factory=list)
    totals: Optional[RosterTotals] = None


class OrderingParty(_Strict):
    cuit: Optional[str] = None
    name: Optional[str] = None
    address: Optional[str] = None


class TransferOperation(_Strict):
    origin_account: Optional[str] = None
    amount: Optional[Money] = None
    destination_cbu: Optional[str] = None
    bank: Optional[str] = None
    holder: Optional[str] = None
    cuit: Optional[str] = None
    operation_type: Optional[str] = None
    amount_to_transfer: Optional[Money] = None
    total_amount: Optional[Money] = None


class TransferExtraction(_Strict):
    """A bank transfer receipt ("comprobante de transferencia")."""

    kind: Literal["transfer"] = "transfer"
    title: Optional[str] = None
    reference: Optional[str] = None
    operation_number: Optional[str] = None
    date: Optional[str] = Field(default=None, description="DD/MM/YYYY")
    time: Optional[str] = Field(default=None, description="HH:MM AM/PM")
    ordering_party: OrderingParty = Field(default_factory=OrderingParty)
    operation: TransferOperation = Field(default_factory=TransferOperation)


Extraction = Annotated[Union[RosterExtraction, TransferExtraction], Field(discriminator="kind")]


class CandidateResult(BaseModel):
    """What an extraction strategy hands to the reconciler and ledger writer."""

    kind: DocumentKind
    source: Literal["heuristic", "ai", "csv"]
    data: Extraction
    pages_analyzed: int = 0
    pages_failed: int = 0

    @property
    def roster(self) -> Optional[RosterExtraction]:
        return self.data if isinstance(self.data, RosterExtraction) else None

    @property
    def transfer(self) -> Optional[TransferExtraction]:
        return self.data if isinstance(self.data, TransferExtraction) else None

    @property
    def is_empty(self) -> bool:
        """True when the extraction found nothing worth reconciling."""
        if self.roster is not None:
            return not self.roster.persons
        return self.transfer.operation.amount is None
