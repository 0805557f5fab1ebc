from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Literal, Optional

log = logging.getLogger(__name__)


class OrderStatus(IntEnum):
    ASSIGNED = 1
    IN_PROGRESS = 2
    QA_CHECK = 3
    READY = 4
    COLLECTED = 5
    CLOSED = 6

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> "OrderStatus":
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ValueError(f"Unknown order status: {value!r}") from None


_STATUS_LABELS = {
    OrderStatus.ASSIGNED: "Assigned",
    OrderStatus.IN_PROGRESS: "In Progress",
    OrderStatus.QA_CHECK: "QA Check",
    OrderStatus.READY: "Ready",
    OrderStatus.COLLECTED: "Collected (Pending)",
    OrderStatus.CLOSED: "Closed",
}


def status_label(value: Any) -> str:
    try:
        return OrderStatus.parse(value).label
    except ValueError:
        return f"Status {value}"


class Role(str, Enum):
    OWNER = "owner"
    MANAGER = "manager"


@dataclass(frozen=True)
class Shop:
    id: int
    name: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class UserProfile:
    id: str
    full_name: str
    role: Role
    shop_id: Optional[int]
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Worker:
    id: str
    shop_id: int
    name: str
    phone_number: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Order:
    id: Optional[str]
    shop_id: Optional[int]
    customer_name: str
    customer_phone: str
    garment_type: str
    price: Decimal
    due_date: Optional[date]
    status: int = OrderStatus.ASSIGNED
    worker_id: Optional[str] = None
    squad: list[str] = field(default_factory=list)
    measurements: dict[str, dict[str, float]] = field(default_factory=dict)
    customer_preferences: str = ""
    manager_id: Optional[str] = None
    amount_paid: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def status_label(self) -> str:
        return status_label(self.status)

    def involves(self, worker_id: str) -> bool:
        return self.worker_id == worker_id or worker_id in self.squad


@dataclass(frozen=True)
class Payment:
    id: Optional[int]
    order_id: str
    amount: Decimal
    recorded_at: Optional[datetime] = None
    manager_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Expense:
    id: Optional[int]
    shop_id: int
    item_name: str
    amount: Decimal
    category: str
    notes: str = ""
    manager_id: Optional[str] = None
    incurred_at: Optional[datetime] = None


def parse_squad(raw: Any) -> list[str]:
    """Decode the stored squad column (JSON text or array) into worker ids."""
    if raw is None:
        return []
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            raw = json.loads(raw)
        except ValueError:
            log.warning("skipping bad squad data: %r", raw[:80])
            return []
    if not isinstance(raw, (list, tuple)):
        log.warning("skipping bad squad data of type %s", type(raw).__name__)
        return []
    return [str(w) for w in raw if w is not None and str(w).strip()]


def parse_measurements(raw: Any) -> dict[str, dict[str, float]]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except ValueError:
            log.warning("skipping bad measurement data: %r", raw[:80])
            return {}
    if not isinstance(raw, dict):
        return {}

    out: dict[str, dict[str, float]] = {}
    for component, fields in raw.items():
        if not isinstance(fields, dict):
            continue
        values = {}
        for name, value in fields.items():
            try:
                values[str(name)] = float(value)
            except (TypeError, ValueError):
                continue
        out[str(component)] = values
    return out


DueKind = Literal["late", "soon", "ok", "done"]


@dataclass(frozen=True)
class DueState:
    days_left: Optional[int]
    kind: DueKind

    @property
    def caption(self) -> str:
        if self.kind == "late":
            return f"LATE ({abs(self.days_left)} days)"
        if self.kind == "soon":
            return "DUE TODAY" if self.days_left == 0 else f"{self.days_left} days left"
        return ""


def due_state(due_date: Optional[date], status: int, today: date) -> DueState:
    if due_date is None:
        return DueState(None, "ok")
    if isinstance(due_date, datetime):
        due_date = due_date.date()
    days_left = (due_date - today).days
    if int(status) >= OrderStatus.COLLECTED:
        return DueState(days_left, "done")
    if days_left < 0:
        return DueState(days_left, "late")
    if days_left <= 2:
        return DueState(days_left, "soon")
    return DueState(days_left, "ok")


def is_urgent(order: Order, today: date) -> bool:
    if int(order.status) >= OrderStatus.COLLECTED or order.due_date is None:
        return False
    return due_state(order.due_date, order.status, today).days_left <= 2
