from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional


@dataclass(frozen=True)
class MaterialRequirement:
    material_id: int
    material_name: str
    required_quantity: Decimal   # usage units
    stock_quantity: Decimal      # purchase units, what the ledger deducts
    available_stock: Decimal     # purchase units at resolution time
    unit: Optional[str] = None
    application_type: Optional[str] = None

    def to_dict(self):
        return {
            'material_id': self.material_id,
            'material_name': self.material_name,
            'required_quantity': str(self.required_quantity),
            'stock_quantity': str(self.stock_quantity),
            'available_stock': str(self.available_stock),
            'unit': self.unit,
            'application_type': self.application_type,
        }


@dataclass(frozen=True)
class BatchStatusUpdate:
    batch_id: int
    status: str
    shipped_units: int
    units_in_progress: int
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    status_changed: bool

    def to_dict(self):
        return {
            'batch_id': self.batch_id,
            'status': self.status,
            'shipped_units': self.shipped_units,
            'units_in_progress': self.units_in_progress,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'status_changed': self.status_changed,
        }


@dataclass
class ServiceResult:
    """Outcome of an operation whose failure the caller decides how to surface."""
    ok: bool
    value: Any = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value=None):
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error):
        return cls(ok=False, error=error)

    @property
    def error_message(self) -> Optional[str]:
        if self.error is None:
            return None
        return getattr(self.error, 'message', None) or str(self.error)

    def to_dict(self):
        value = self.value.to_dict() if hasattr(self.value, 'to_dict') else self.value
        return {'ok': self.ok, 'value': value, 'error': self.error_message}
