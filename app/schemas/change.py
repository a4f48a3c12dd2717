from enum import Enum
from pydantic import BaseModel
from typing import Any, Dict, Optional

class ChangeTable(str, Enum):
    DOCTORS = "doctors"
    TOKENS = "tokens"

class ChangeKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

class ChangeEvent(BaseModel):
    table: ChangeTable
    event: ChangeKind
    record_id: Optional[str] = None
    # Subscribers re-fetch on notify; the record only serves filter matching
    record: Optional[Dict[str, Any]] = None

    def matches(self, table: ChangeTable, field: Optional[str] = None, value: Optional[Any] = None) -> bool:
        if self.table != table:
            return False
        if field is None:
            return True
        if not self.record or field not in self.record:
            return False
        return str(self.record[field]) == str(value)
