from enum import Enum

from .errors import FieldError, ValidationError

CENTRAL = "central"
MAINTENANCE = "maintenance"
CLIENT_PREFIX = "client:"

DEFAULT_CLIENT_WAREHOUSES = 5


class ScopeKind(str, Enum):
    CENTRAL = "central"
    MAINTENANCE = "maintenance"
    CLIENT = "client"


# primeira numeração de material por tipo de almoxarifado
FIRST_MATERIAL_NUMBER = {
    ScopeKind.CENTRAL: 1001,
    ScopeKind.CLIENT: 2001,
    ScopeKind.MAINTENANCE: 3001,
}


def client_scope(n: int) -> str:
    return f"{CLIENT_PREFIX}{n}"


def all_scopes(client_warehouses: int = DEFAULT_CLIENT_WAREHOUSES):
    return [CENTRAL, MAINTENANCE] + [client_scope(i) for i in range(1, client_warehouses + 1)]


def normalize_scope(value, client_warehouses: int = DEFAULT_CLIENT_WAREHOUSES) -> str:
    """Valida e devolve a forma canônica do escopo ('central', 'maintenance', 'client:N')."""
    raw = (str(value) if value is not None else "").strip().lower()
    if raw in (CENTRAL, MAINTENANCE):
        return raw
    if raw.startswith(CLIENT_PREFIX):
        num = raw[len(CLIENT_PREFIX):]
        if num.isdigit() and 1 <= int(num) <= client_warehouses:
            return client_scope(int(num))
    raise ValidationError(
        f"Almoxarifado inválido: '{value}'.",
        errors=[FieldError("scope", "invalid_scope", f"Use um de: {', '.join(all_scopes(client_warehouses))}.")],
    )


def scope_kind(scope: str) -> ScopeKind:
    if scope.startswith(CLIENT_PREFIX):
        return ScopeKind.CLIENT
    return ScopeKind(scope)
