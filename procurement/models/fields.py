from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.core import exceptions
from django.db import models


class LedgerDecimalField(models.DecimalField):
    """Money and stock amounts, rounded half-up to ``decimal_places``.

    Blank input on a non-null field reads as zero; anything else that is not
    a number is a validation error.
    """

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("max_digits", 14)
        kwargs.setdefault("decimal_places", 2)
        super().__init__(*args, **kwargs)

    def _quantize(self, value: Decimal) -> Decimal:
        return value.quantize(Decimal(1).scaleb(-self.decimal_places), ROUND_HALF_UP)

    def to_python(self, value):
        if value in self.empty_values:
            return None if self.null else Decimal("0")
        if isinstance(value, bool):
            raise exceptions.ValidationError(
                self.error_messages["invalid"], code="invalid", params={"value": value}
            )
        try:
            number = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
        except (TypeError, ValueError, InvalidOperation):
            raise exceptions.ValidationError(
                self.error_messages["invalid"], code="invalid", params={"value": value}
            )
        if not number.is_finite():
            raise exceptions.ValidationError(
                self.error_messages["invalid"], code="invalid", params={"value": value}
            )
        return self._quantize(number)

    def from_db_value(self, value, expression, connection):
        if value is None:
            return value
        return self._quantize(Decimal(value))
