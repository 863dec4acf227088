"""
Realtime change events and transport-level column filters.

A change event mirrors one committed row change on a watched table:

    {
        "table": "messages",
        "event": "INSERT",
        "new": {...row after...},
        "old": {...row before...},
        "commit_timestamp": "2026-01-01T12:00:00"
    }
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ChangeEventType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "*"


@dataclass
class ChangeEvent:
    """A single row change on a watched table"""
    table: str
    event: ChangeEventType
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)
    commit_timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def record(self) -> Dict[str, Any]:
        """The row as it exists after the change (the old row for deletes)"""
        if self.event == ChangeEventType.DELETE:
            return self.old
        return self.new

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "event": self.event.value,
            "new": self.new,
            "old": self.old,
            "commit_timestamp": self.commit_timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChangeEvent":
        timestamp = data.get("commit_timestamp")
        return cls(
            table=data["table"],
            event=ChangeEventType(data["event"]),
            new=data.get("new") or {},
            old=data.get("old") or {},
            commit_timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.utcnow(),
        )

    @classmethod
    def from_json(cls, payload: str) -> "ChangeEvent":
        return cls.from_dict(json.loads(payload))


class FilterOperator(str, Enum):
    EQ = "eq"
    NEQ = "neq"


@dataclass(frozen=True)
class ColumnFilter:
    """
    Single-column predicate evaluated by the transport before delivery.

    Textual form is "column=op.value", e.g. "sender_id=neq.<user id>".
    """
    column: str
    op: FilterOperator
    value: str

    @classmethod
    def parse(cls, expression: str) -> "ColumnFilter":
        column, sep, rest = expression.partition("=")
        op, dot, value = rest.partition(".")
        if not sep or not dot or not column:
            raise ValueError(f"Invalid column filter: {expression!r}")
        return cls(column=column.strip(), op=FilterOperator(op.strip()), value=value)

    @classmethod
    def eq(cls, column: str, value: Any) -> "ColumnFilter":
        return cls(column=column, op=FilterOperator.EQ, value=str(value))

    @classmethod
    def neq(cls, column: str, value: Any) -> "ColumnFilter":
        return cls(column=column, op=FilterOperator.NEQ, value=str(value))

    def matches(self, change: ChangeEvent) -> bool:
        row = change.record
        actual: Optional[Any] = row.get(self.column)
        actual_str = None if actual is None else str(actual)
        if self.op == FilterOperator.EQ:
            return actual_str == self.value
        return actual_str != self.value

    def __str__(self) -> str:
        return f"{self.column}={self.op.value}.{self.value}"
