"""Erros de domínio do almoxarifado.

Toda falha de regra de negócio sobe como uma subclasse de ``WarehouseError``,
com ``code`` estável (para API e testes), ``http_status`` e ``details``
estruturado. Nenhuma delas é fatal para o processo; falhas de infraestrutura
(conexão, corrupção) continuam subindo como exceções do SQLAlchemy.

    WarehouseError
    +-- ValidationError
    |   +-- UnknownSubtype
    |   +-- MissingRequiredField
    |   +-- CrossScopeBatchError
    |   +-- InactiveMaterial
    +-- NotFound
    +-- InsufficientStock
    +-- ConcurrentModification
    +-- ImmutableRecordError
"""
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FieldError:
    field: str
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


class WarehouseError(Exception):
    code: str = "WAREHOUSE_ERROR"
    default_message: str = "Erro no almoxarifado."
    http_status: int = 400

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        result = {"code": self.code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(WarehouseError):
    code = "VALIDATION_ERROR"
    default_message = "Dados inválidos."
    http_status = 422

    def __init__(self, message: Optional[str] = None, errors: Optional[List[FieldError]] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.errors = list(errors or [])
        if self.errors:
            self.details["errors"] = [e.to_dict() for e in self.errors]


class UnknownSubtype(ValidationError):
    code = "UNKNOWN_SUBTYPE"
    default_message = "Tipo de movimentação não permitido para este almoxarifado."

    def __init__(self, scope: str, direction: str, subtype: str):
        self.scope = scope
        self.direction = direction
        self.subtype = subtype
        super().__init__(
            f"Tipo '{subtype}' não é permitido para {direction} em '{scope}'.",
            errors=[FieldError("subtype", "unknown_subtype", f"Tipo '{subtype}' desconhecido.")],
        )
        self.details.update({"scope": scope, "direction": direction, "subtype": subtype})


class MissingRequiredField(ValidationError):
    code = "MISSING_REQUIRED_FIELD"
    default_message = "Campos obrigatórios não informados."

    @property
    def fields(self) -> List[str]:
        return [e.field for e in self.errors if e.code == "missing_required_field"]


class CrossScopeBatchError(ValidationError):
    code = "CROSS_SCOPE_BATCH"
    default_message = "Todos os itens de uma saída devem ser do mesmo almoxarifado."

    def __init__(self, scopes: List[str]):
        self.scopes = sorted(set(scopes))
        super().__init__(details={"scopes": self.scopes})


class InactiveMaterial(ValidationError):
    code = "INACTIVE_MATERIAL"
    default_message = "Material inativo não aceita movimentações."

    def __init__(self, material_id: int):
        self.material_id = material_id
        super().__init__(
            f"Material {material_id} está inativo.",
            details={"material_id": material_id},
        )


class NotFound(WarehouseError):
    code = "NOT_FOUND"
    default_message = "Registro não encontrado."
    http_status = 404

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(
            f"{entity} {key} não encontrado.",
            details={"entity": entity, "key": key},
        )


@dataclass(frozen=True)
class Shortage:
    material_id: int
    requested: Decimal
    available: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "material_id": self.material_id,
            "requested": str(self.requested),
            "available": str(self.available),
        }


class InsufficientStock(WarehouseError):
    """Saldo insuficiente para pelo menos um item; nada foi baixado.

    ``material_id``/``requested``/``available`` descrevem o primeiro item
    (na ordem de bloqueio); ``shortages`` lista todos.
    """

    code = "INSUFFICIENT_STOCK"
    default_message = "Saldo insuficiente."
    http_status = 409

    def __init__(self, shortages: List[Shortage]):
        if not shortages:
            raise ValueError("InsufficientStock exige ao menos um item")
        self.shortages = list(shortages)
        first = self.shortages[0]
        self.material_id = first.material_id
        self.requested = first.requested
        self.available = first.available
        super().__init__(
            f"Saldo insuficiente para o material {first.material_id}: "
            f"solicitado {first.requested}, disponível {first.available}.",
            details={
                **first.to_dict(),
                "shortages": [s.to_dict() for s in self.shortages],
            },
        )


class ConcurrentModification(WarehouseError):
    """Outra transação alterou o saldo durante o commit; pode ser repetido."""

    code = "CONCURRENT_MODIFICATION"
    default_message = "O estoque foi alterado por outra operação. Tente novamente."
    http_status = 503
    retryable = True

    def __init__(self, material_ids: List[int], attempts: int):
        self.material_ids = list(material_ids)
        self.attempts = attempts
        super().__init__(details={"material_ids": self.material_ids, "attempts": attempts})


class ImmutableRecordError(WarehouseError):
    code = "IMMUTABLE_RECORD"
    default_message = "Movimentações registradas não podem ser alteradas nem excluídas."
    http_status = 409

    def __init__(self, record_id: Any, operation: str):
        self.record_id = record_id
        self.operation = operation
        super().__init__(details={"record_id": record_id, "operation": operation})
