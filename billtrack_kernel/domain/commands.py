"""
Mutation inputs (``billtrack_kernel.domain.commands``).

Responsibility
--------------
Closed, frozen records for every mutation the orchestrator accepts.  Each
record validates itself in ``__post_init__`` and offers ``from_payload``
for loosely-typed JSON bodies: unknown keys, missing keys and wrong types
are rejected here, before anything reaches a state machine.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Rate
allow-lists are configuration, so they are checked later by the tax
engine; everything that does not need configuration is checked here.

Failure modes
-------------
* ``InvalidPayloadError`` -- unknown/missing keys, wrong types, missing
  payer reference for an individual.
* ``InvalidAmountError`` -- non-positive amounts, negative rates, a
  withholding rate without withholding (or the reverse).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any
from uuid import UUID

from billtrack_kernel.db.types import ZERO, to_decimal
from billtrack_kernel.domain.document import DocumentType, TransactionType
from billtrack_kernel.domain.payments import PayerType
from billtrack_kernel.exceptions import InvalidAmountError, InvalidPayloadError


# =============================================================================
# Boundary helpers
# =============================================================================


def _check_keys(
    payload: Mapping[str, Any],
    allowed: Iterable[str],
    required: Iterable[str] = (),
) -> None:
    if not isinstance(payload, Mapping):
        raise InvalidPayloadError("payload", "must be an object")
    allowed = set(allowed)
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise InvalidPayloadError(unknown[0], "unknown field")
    for key in required:
        if payload.get(key) is None:
            raise InvalidPayloadError(key, "is required")


def _field_names(cls: type) -> tuple[str, ...]:
    return tuple(f.name for f in fields(cls))


def _as_uuid(field_name: str, value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise InvalidPayloadError(field_name, "must be a UUID") from exc


def _as_optional_uuid(field_name: str, value: Any) -> UUID | None:
    return None if value is None else _as_uuid(field_name, value)


def _as_bool(field_name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise InvalidPayloadError(field_name, "must be true or false")
    return value


def _as_optional_bool(field_name: str, value: Any) -> bool | None:
    return None if value is None else _as_bool(field_name, value)


def parse_amount(field_name: str, value: Any) -> Decimal:
    try:
        return to_decimal(value)
    except (TypeError, ValueError) as exc:
        raise InvalidAmountError(field_name, value, str(exc)) from exc


def _as_rate(field_name: str, value: Any) -> Decimal:
    rate = parse_amount(field_name, value)
    if rate < ZERO:
        raise InvalidAmountError(field_name, value, "rate cannot be negative")
    return rate


def _as_enum(field_name: str, enum_cls: type, value: Any):
    try:
        return enum_cls(value)
    except ValueError as exc:
        choices = ", ".join(m.value for m in enum_cls)
        raise InvalidPayloadError(field_name, f"must be one of {choices}") from exc


def _as_optional_text(field_name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidPayloadError(field_name, "must be a string")
    value = value.strip()
    return value or None


# =============================================================================
# Transaction commands
# =============================================================================


@dataclass(frozen=True)
class CreateTransaction:
    """Create an expense or income in DRAFT."""

    transaction_type: TransactionType
    company_id: UUID
    actor_id: UUID
    base_amount: Decimal
    vat_rate_percent: Decimal = ZERO
    is_withholding_applicable: bool = False
    withholding_rate_percent: Decimal | None = None
    withholding_category: str | None = None
    has_tax_document: bool = False
    has_withholding_certificate: bool = False
    document_type: DocumentType | None = None
    counterparty_ref: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, "transaction_type",
             _as_enum("transaction_type", TransactionType, self.transaction_type))
        set_(self, "company_id", _as_uuid("company_id", self.company_id))
        set_(self, "actor_id", _as_uuid("actor_id", self.actor_id))

        base = parse_amount("base_amount", self.base_amount)
        if base <= ZERO:
            raise InvalidAmountError("base_amount", base, "must be greater than zero")
        set_(self, "base_amount", base)
        set_(self, "vat_rate_percent", _as_rate("vat_rate_percent", self.vat_rate_percent))

        set_(self, "is_withholding_applicable",
             _as_bool("is_withholding_applicable", self.is_withholding_applicable))
        set_(self, "has_tax_document", _as_bool("has_tax_document", self.has_tax_document))
        set_(self, "has_withholding_certificate",
             _as_bool("has_withholding_certificate", self.has_withholding_certificate))

        if self.withholding_rate_percent is not None:
            set_(self, "withholding_rate_percent",
                 _as_rate("withholding_rate_percent", self.withholding_rate_percent))
        if self.is_withholding_applicable:
            if self.withholding_rate_percent is None and self.withholding_category is None:
                raise InvalidAmountError(
                    "withholding_rate_percent", None,
                    "a rate or category is required when withholding applies",
                )
        elif self.withholding_rate_percent is not None:
            raise InvalidAmountError(
                "withholding_rate_percent", self.withholding_rate_percent,
                "must be empty when withholding does not apply",
            )

        if self.document_type is not None:
            if self.transaction_type is TransactionType.INCOME:
                raise InvalidPayloadError("document_type", "only expenses carry a document type")
            set_(self, "document_type",
                 _as_enum("document_type", DocumentType, self.document_type))
        elif self.transaction_type is TransactionType.EXPENSE:
            set_(self, "document_type", DocumentType.TAX_INVOICE)

        set_(self, "counterparty_ref", _as_optional_text("counterparty_ref", self.counterparty_ref))
        set_(self, "description", _as_optional_text("description", self.description))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CreateTransaction:
        _check_keys(
            payload,
            _field_names(cls),
            required=("transaction_type", "company_id", "actor_id", "base_amount"),
        )
        return cls(**payload)


@dataclass(frozen=True)
class DocumentFlagsUpdate:
    """Partial update of document flags.  None means "leave unchanged".

    ``explicit_status`` is the manual-correction escape hatch: when given it
    is used verbatim and no derivation runs.
    """

    has_tax_document: bool | None = None
    is_withholding_applicable: bool | None = None
    withholding_rate_percent: Decimal | None = None
    has_withholding_certificate: bool | None = None
    explicit_status: str | None = None

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, "has_tax_document",
             _as_optional_bool("has_tax_document", self.has_tax_document))
        set_(self, "is_withholding_applicable",
             _as_optional_bool("is_withholding_applicable", self.is_withholding_applicable))
        set_(self, "has_withholding_certificate",
             _as_optional_bool("has_withholding_certificate", self.has_withholding_certificate))
        if self.withholding_rate_percent is not None:
            set_(self, "withholding_rate_percent",
                 _as_rate("withholding_rate_percent", self.withholding_rate_percent))
            if self.is_withholding_applicable is False:
                raise InvalidAmountError(
                    "withholding_rate_percent", self.withholding_rate_percent,
                    "must be empty when withholding does not apply",
                )
        set_(self, "explicit_status", _as_optional_text("explicit_status", self.explicit_status))

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> DocumentFlagsUpdate:
        _check_keys(payload, _field_names(cls))
        return cls(**payload)


# =============================================================================
# Settlement commands
# =============================================================================


@dataclass(frozen=True)
class PaymentAttributionInput:
    """One row of "who paid" for an expense."""

    payer_type: PayerType
    amount: Decimal
    payer_ref: UUID | None = None
    payer_name: str | None = None

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, "payer_type", _as_enum("payer_type", PayerType, self.payer_type))
        amount = parse_amount("amount", self.amount)
        if amount <= ZERO:
            raise InvalidAmountError("amount", amount, "must be greater than zero")
        set_(self, "amount", amount)
        set_(self, "payer_ref", _as_optional_uuid("payer_ref", self.payer_ref))
        set_(self, "payer_name", _as_optional_text("payer_name", self.payer_name))
        if self.payer_type is PayerType.INDIVIDUAL and self.payer_ref is None:
            raise InvalidPayloadError("payer_ref", "is required when the payer is an individual")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PaymentAttributionInput:
        _check_keys(payload, _field_names(cls), required=("payer_type", "amount"))
        return cls(**payload)


@dataclass(frozen=True)
class BatchSettleOptions:
    """Options shared by every row of a batch settlement."""

    reference: str | None = None
    attachments: tuple[str, ...] = ()
    create_reimbursement_expenses: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "reference", _as_optional_text("reference", self.reference))
        if isinstance(self.attachments, str) or not all(
            isinstance(a, str) for a in self.attachments
        ):
            raise InvalidPayloadError("attachments", "must be a list of strings")
        object.__setattr__(self, "attachments", tuple(self.attachments))
        _as_bool("create_reimbursement_expenses", self.create_reimbursement_expenses)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> BatchSettleOptions:
        _check_keys(payload, _field_names(cls))
        return cls(**payload)


def require_reason(reason: str | None, field_name: str = "reason") -> str:
    """Return the stripped reason or raise when it is blank."""
    text = _as_optional_text(field_name, reason)
    if text is None:
        raise InvalidPayloadError(field_name, "a non-empty reason is required")
    return text
