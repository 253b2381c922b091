from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet

from qbo_client.response import capitalize

CREATE = "create"
READ = "read"
UPDATE = "update"
DELETE = "delete"
VOID = "void"
QUERY = "query"
PDF = "pdf"
SEND = "send"

ALL_OPERATIONS: FrozenSet[str] = frozenset({CREATE, READ, UPDATE, DELETE, VOID, QUERY, PDF, SEND})


@dataclass(frozen=True)
class Entity:
    """A QBO entity: logical camelCase name plus the operations QBO allows on it."""

    name: str
    operations: FrozenSet[str] = ALL_OPERATIONS

    @property
    def url_segment(self) -> str:
        return self.name.lower()

    @property
    def envelope_key(self) -> str:
        return capitalize(self.name)

    def supports(self, operation: str) -> bool:
        return operation in self.operations


def _ops(*names: str) -> FrozenSet[str]:
    return frozenset(names)


_LIST = _ops(CREATE, READ, UPDATE, QUERY)
_TXN = _ops(CREATE, READ, UPDATE, DELETE, QUERY)

_REGISTRY = (
    Entity("account", _LIST),
    Entity("attachable", _TXN),
    Entity("bill", _TXN),
    Entity("billPayment", _TXN | {VOID}),
    Entity("budget", _ops(READ, QUERY)),
    Entity("class", _LIST),
    Entity("companyCurrency", _LIST),
    Entity("companyInfo", _ops(READ, UPDATE, QUERY)),
    Entity("creditMemo", _TXN | {PDF, SEND}),
    Entity("customer", _LIST),
    Entity("customerType", _ops(READ, QUERY)),
    Entity("department", _LIST),
    Entity("deposit", _TXN),
    Entity("employee", _LIST),
    Entity("estimate", _TXN | {PDF, SEND}),
    Entity("exchangeRate", _ops(READ, UPDATE, QUERY)),
    Entity("invoice", _TXN | {VOID, PDF, SEND}),
    Entity("item", _LIST),
    Entity("journalCode", _LIST),
    Entity("journalEntry", _TXN),
    Entity("payment", _TXN | {VOID, PDF, SEND}),
    Entity("paymentMethod", _LIST),
    Entity("preferences", _ops(READ, UPDATE, QUERY)),
    Entity("purchase", _TXN),
    Entity("purchaseOrder", _TXN | {SEND}),
    Entity("refundReceipt", _TXN | {PDF, SEND}),
    Entity("salesReceipt", _TXN | {VOID, PDF, SEND}),
    Entity("taxAgency", _ops(CREATE, READ, QUERY)),
    Entity("taxCode", _ops(READ, QUERY)),
    Entity("taxRate", _ops(READ, QUERY)),
    Entity("taxService", _ops(CREATE)),
    Entity("term", _LIST),
    Entity("timeActivity", _TXN),
    Entity("transfer", _TXN),
    Entity("vendor", _LIST),
    Entity("vendorCredit", _TXN),
)

ENTITIES: Dict[str, Entity] = {e.url_segment: e for e in _REGISTRY}


def resolve(name: str) -> Entity:
    """Registered entity for ``name`` (any casing, underscores ignored).

    Unknown names get an ad-hoc entity that keeps the caller's casing and
    allows every operation.
    """
    key = name.replace("_", "").lower()
    return ENTITIES.get(key) or Entity(name)
