"""Tipos de movimentação (entrada/saída) por almoxarifado.

Uma única tabela imutável, ``MOVEMENT_TYPES``, chaveada por
(tipo de almoxarifado, direção). Cada tipo aponta para a classe de dados
que descreve os campos específicos da movimentação; os campos obrigatórios
e opcionais são derivados dessa classe, então formulário, validação e
histórico leem o mesmo contrato.
"""
from dataclasses import MISSING, asdict, dataclass, fields as dc_fields
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import ClassVar, Dict, List, Mapping, Optional, Tuple

from .errors import FieldError, MissingRequiredField, UnknownSubtype, ValidationError
from .scopes import ScopeKind, scope_kind
from .utils import parse_date


class Direction(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


# ------------------------- campos por tipo -------------------------
@dataclass(frozen=True)
class StandardEntry:
    tag: ClassVar[str] = "standard_entry"

    invoice_number: Optional[str] = None
    purchase_order_number: Optional[str] = None
    supplier: Optional[str] = None
    observations: Optional[str] = None


@dataclass(frozen=True)
class ServiceReturn:
    tag: ClassVar[str] = "service_return"

    authentication_code: str
    withdrawal_date: Optional[date] = None
    withdrawer_name: Optional[str] = None
    observations: Optional[str] = None


@dataclass(frozen=True)
class ContractReturn:
    tag: ClassVar[str] = "contract_return"

    returner_name: str
    observations: Optional[str] = None


@dataclass(frozen=True)
class NormalReturn:
    tag: ClassVar[str] = "normal_return"

    withdrawer_name: Optional[str] = None
    withdrawal_date: Optional[date] = None
    observations: Optional[str] = None


@dataclass(frozen=True)
class _ExitFields:
    # toda saída identifica quem retirou
    withdrawer_name: str
    vehicle_plate: Optional[str] = None
    observations: Optional[str] = None


@dataclass(frozen=True)
class NormalExit(_ExitFields):
    tag: ClassVar[str] = "normal_exit"


@dataclass(frozen=True)
class DisposalExit(_ExitFields):
    tag: ClassVar[str] = "disposal_exit"


@dataclass(frozen=True)
class ServiceCheckout(_ExitFields):
    tag: ClassVar[str] = "service_checkout"


@dataclass(frozen=True)
class ContractCheckout(_ExitFields):
    tag: ClassVar[str] = "contract_checkout"


PAYLOAD_TYPES = (
    StandardEntry, ServiceReturn, ContractReturn, NormalReturn,
    NormalExit, DisposalExit, ServiceCheckout, ContractCheckout,
)

DATE_FIELDS = frozenset({"withdrawal_date"})
MAX_TEXT_LENGTH = 500


def payload_to_dict(payload) -> Dict[str, Optional[str]]:
    data = asdict(payload)
    for k, v in data.items():
        if isinstance(v, date):
            data[k] = v.isoformat()
    return data


# ------------------------- tabela -------------------------
@dataclass(frozen=True)
class MovementTypeDefinition:
    scope: ScopeKind
    direction: Direction
    key: str
    label: str
    payload: type
    required_fields: Tuple[str, ...]
    optional_fields: Tuple[str, ...]

    def to_dict(self):
        return {
            "key": self.key,
            "label": self.label,
            "direction": self.direction.value,
            "required_fields": list(self.required_fields),
            "optional_fields": list(self.optional_fields),
        }


def _define(scope, direction, key, label, payload):
    required = tuple(f.name for f in dc_fields(payload)
                     if f.default is MISSING and f.default_factory is MISSING)
    optional = tuple(f.name for f in dc_fields(payload) if f.name not in required)
    return MovementTypeDefinition(scope, direction, key, label, payload, required, optional)


_ENTRADAS = (
    ("entrada_comum", "Entrada Comum", StandardEntry),
    ("devolucao_servico", "Devolução de Material Acautelado (Serviço)", ServiceReturn),
    ("devolucao_contratacao", "Devolução de Material Acautelado (Contratação)", ContractReturn),
    ("devolucao_normal", "Devolução Normal", NormalReturn),
)

_SAIDAS = (
    ("normal", "Normal", NormalExit),
    ("descarte", "Descarte", DisposalExit),
    ("acautelamento_servico", "Acautelamento Serviço", ServiceCheckout),
    ("acautelamento_contratacao", "Acautelamento Contratação", ContractCheckout),
)

# manutenção não faz acautelamento; as entradas são as mesmas de todos os almoxarifados
_SAIDAS_MANUTENCAO = ("normal", "descarte")


def _table():
    table = {}
    for kind in ScopeKind:
        saidas = _SAIDAS
        if kind is ScopeKind.MAINTENANCE:
            saidas = tuple(t for t in _SAIDAS if t[0] in _SAIDAS_MANUTENCAO)
        table[(kind, Direction.ENTRY)] = tuple(_define(kind, Direction.ENTRY, *t) for t in _ENTRADAS)
        table[(kind, Direction.EXIT)] = tuple(_define(kind, Direction.EXIT, *t) for t in saidas)
    return MappingProxyType(table)


MOVEMENT_TYPES: Mapping[Tuple[ScopeKind, Direction], Tuple[MovementTypeDefinition, ...]] = _table()


# ------------------------- registro -------------------------
class MovementTypeRegistry:
    """Consulta e validação dos tipos de movimentação permitidos."""

    def __init__(self, table=MOVEMENT_TYPES):
        self._by_key = {}
        self._order = {}
        for (kind, direction), definitions in table.items():
            keys = []
            for d in definitions:
                if d.payload not in PAYLOAD_TYPES:
                    raise ValueError(f"Tipo {d.key}: classe de campos desconhecida {d.payload!r}")
                self._by_key[(kind, direction, d.key)] = d
                keys.append(d.key)
            self._order[(kind, direction)] = tuple(keys)

    def subtypes_for(self, scope: str, direction) -> List[MovementTypeDefinition]:
        kind, direction = scope_kind(scope), Direction(direction)
        return [self._by_key[(kind, direction, k)] for k in self._order.get((kind, direction), ())]

    def definition(self, scope: str, direction, subtype: str) -> MovementTypeDefinition:
        direction = Direction(direction)
        if not isinstance(subtype, str):
            raise UnknownSubtype(scope, direction.value, repr(subtype))
        d = self._by_key.get((scope_kind(scope), direction, subtype))
        if d is None:
            raise UnknownSubtype(scope, direction.value, subtype)
        return d

    def validate(self, scope: str, direction, subtype: str, fields: Optional[Mapping]) -> List[FieldError]:
        """Lista de erros por campo; lista vazia significa válido."""
        try:
            d = self.definition(scope, direction, subtype)
        except UnknownSubtype as e:
            return list(e.errors)
        _, errors = self._coerce(d, fields or {})
        return errors

    def parse(self, scope: str, direction, subtype: str, fields: Optional[Mapping]):
        """Valida e devolve a instância tipada dos campos do tipo."""
        d = self.definition(scope, direction, subtype)
        values, errors = self._coerce(d, fields or {})
        if errors:
            if any(e.code == "missing_required_field" for e in errors):
                raise MissingRequiredField(errors=errors)
            raise ValidationError(errors=errors)
        return d.payload(**values)

    def load(self, scope: str, direction, subtype: str, stored: Mapping):
        """Reconstrói os campos tipados de um registro já gravado."""
        d = self.definition(scope, direction, subtype)
        values = {}
        for name in d.required_fields + d.optional_fields:
            v = stored.get(name)
            values[name] = parse_date(v) if name in DATE_FIELDS else v
        return d.payload(**values)

    @staticmethod
    def _coerce(d: MovementTypeDefinition, fields: Mapping):
        allowed = set(d.required_fields) | set(d.optional_fields)
        values = {}
        errors = []

        for name in sorted(set(fields) - allowed):
            errors.append(FieldError(name, "unexpected_field",
                                     f"Campo '{name}' não se aplica ao tipo '{d.key}'."))

        for name in d.required_fields + d.optional_fields:
            raw = fields.get(name)
            if isinstance(raw, str):
                raw = raw.strip() or None
            if raw is None:
                if name in d.required_fields:
                    errors.append(FieldError(name, "missing_required_field", f"Campo '{name}' é obrigatório."))
                values[name] = None
                continue

            if name in DATE_FIELDS:
                parsed = parse_date(raw)
                if parsed is None:
                    errors.append(FieldError(name, "invalid_value", "Data inválida (use AAAA-MM-DD)."))
                values[name] = parsed
                continue

            if isinstance(raw, bool) or not isinstance(raw, (str, int)):
                errors.append(FieldError(name, "invalid_value", f"Campo '{name}' deve ser texto."))
                continue
            text = str(raw)
            if len(text) > MAX_TEXT_LENGTH:
                errors.append(FieldError(name, "invalid_value",
                                         f"Campo '{name}' excede {MAX_TEXT_LENGTH} caracteres."))
            values[name] = text
        return values, errors
