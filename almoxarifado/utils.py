from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from .errors import FieldError, ValidationError

QUANTITY_PLACES = 3
# limite exclusivo que cabe exato em Numeric(12, 3)
MAX_QUANTITY = Decimal("1000000000")


def utcnow() -> datetime:
    # gravado sem fuso (UTC), como o restante das colunas DateTime
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_decimal(v, field: str = "quantity") -> Decimal:
    """Converte texto/número em Decimal exato; aceita vírgula decimal."""
    if isinstance(v, Decimal):
        d = v
    elif isinstance(v, bool) or v is None:
        raise _invalid(field, "Informe um número.")
    elif isinstance(v, float):
        # via str para não herdar a representação binária do float
        d = Decimal(str(v))
    else:
        try:
            d = Decimal(str(v).strip().replace(",", "."))
        except (InvalidOperation, ValueError):
            raise _invalid(field, "Informe um número.") from None
    if not d.is_finite():
        raise _invalid(field, "Informe um número.")
    return d


def parse_quantity(v, field: str = "quantity") -> Decimal:
    """Quantidade de movimentação: positiva, no máximo 3 casas decimais."""
    d = to_decimal(v, field)
    if d <= 0:
        raise _invalid(field, "Quantidade deve ser maior que zero.")
    if d >= MAX_QUANTITY:
        raise _invalid(field, f"Quantidade deve ser menor que {MAX_QUANTITY}.")
    if d.as_tuple().exponent < -QUANTITY_PLACES:
        raise _invalid(field, f"Use no máximo {QUANTITY_PLACES} casas decimais.")
    return d


def parse_stock_level(v, field: str = "minimum_stock") -> Decimal:
    d = to_decimal(v, field)
    if d < 0:
        raise _invalid(field, "Valor não pode ser negativo.")
    if d >= MAX_QUANTITY:
        raise _invalid(field, f"Valor deve ser menor que {MAX_QUANTITY}.")
    if d.as_tuple().exponent < -QUANTITY_PLACES:
        raise _invalid(field, f"Use no máximo {QUANTITY_PLACES} casas decimais.")
    return d


def format_quantity(d) -> str:
    if d is None:
        return "0"
    d = d if isinstance(d, Decimal) else Decimal(str(d))
    return format(d.normalize(), "f")


def parse_date(s):
    if s is None or s == "":
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    try:
        return datetime.strptime(str(s).strip(), "%Y-%m-%d").date()
    except ValueError:
        return None


def _invalid(field, message):
    return ValidationError(message, errors=[FieldError(field, "invalid_value", message)])
