"""Shared schema types."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Optional

from pydantic import AfterValidator, Field, PlainSerializer

from offline_pos.core.time_utils import ensure_utc

CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# Sale amounts in whole cents, matching the NUMERIC(12, 2) store columns;
# Decimal in memory, JSON numbers on the wire
Money = Annotated[
    Decimal,
    Field(max_digits=12, decimal_places=2),
    PlainSerializer(float, return_type=float, when_used="json"),
]

# Catalog prices come from the server as-is and are rounded to cents
Price = Annotated[
    Decimal,
    AfterValidator(to_cents),
    PlainSerializer(float, return_type=float, when_used="json"),
]

# SQLite returns naive datetimes; read models always expose aware UTC
UtcDateTime = Annotated[datetime, AfterValidator(ensure_utc)]
OptionalUtcDateTime = Annotated[Optional[datetime], AfterValidator(ensure_utc)]
