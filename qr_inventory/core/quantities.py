"""
Three-bucket stock quantities (unrestricted, free-of-charge, returnable)
"""
from dataclasses import dataclass, fields
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from .exceptions import InvalidRequestError

BUCKETS = ("unrestrict", "foc", "rfb")


@dataclass(frozen=True)
class Quantities:
    unrestrict: int = 0
    foc: int = 0
    rfb: int = 0

    @property
    def total(self) -> int:
        return self.unrestrict + self.foc + self.rfb

    def items(self) -> Iterator[Tuple[str, int]]:
        for f in fields(self):
            yield f.name, getattr(self, f.name)

    def __add__(self, other: "Quantities") -> "Quantities":
        return Quantities(
            self.unrestrict + other.unrestrict,
            self.foc + other.foc,
            self.rfb + other.rfb,
        )

    def __sub__(self, other: "Quantities") -> "Quantities":
        return Quantities(
            self.unrestrict - other.unrestrict,
            self.foc - other.foc,
            self.rfb - other.rfb,
        )

    def is_zero(self) -> bool:
        return all(value == 0 for _, value in self.items())

    def any_positive(self) -> bool:
        return any(value > 0 for _, value in self.items())

    def first_negative(self) -> Optional[str]:
        """Name of the first bucket below zero, if any"""
        for name, value in self.items():
            if value < 0:
                return name
        return None

    def as_dict(self) -> Dict[str, int]:
        return {**dict(self.items()), "total": self.total}

    @classmethod
    def coerce(cls, value: Any, allow_negative: bool = False) -> "Quantities":
        """Build from a Quantities, a mapping, or None; values must be integers"""
        if isinstance(value, Quantities):
            result = value
        elif value is None:
            result = cls()
        elif isinstance(value, Mapping):
            unknown = set(value) - set(BUCKETS) - {"total"}
            if unknown:
                raise InvalidRequestError(
                    f"Unknown quantity bucket(s): {', '.join(sorted(unknown))}",
                    field="quantities",
                )
            parts = {}
            for name in BUCKETS:
                raw = value.get(name, 0) or 0
                if isinstance(raw, bool) or not isinstance(raw, int):
                    raise InvalidRequestError(f"Quantity {name} must be an integer", field=name)
                parts[name] = raw
            result = cls(**parts)
        else:
            raise InvalidRequestError("Quantities must be a mapping", field="quantities")

        if not allow_negative:
            negative = result.first_negative()
            if negative:
                raise InvalidRequestError(f"Quantity {negative} cannot be negative", field=negative)
        return result

    @classmethod
    def of_count(cls, row: Any) -> "Quantities":
        """Read the buckets off a StockCount-like row"""
        return cls(row.unrestrict or 0, row.foc or 0, row.rfb or 0)

    @classmethod
    def of_line(cls, row: Any) -> "Quantities":
        """Read the buckets off a movement/transfer line row (*_qty columns)"""
        return cls(row.unrestrict_qty or 0, row.foc_qty or 0, row.rfb_qty or 0)


ZERO = Quantities()
