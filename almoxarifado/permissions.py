from functools import wraps

from flask import jsonify
from flask_login import current_user


ROLE_PERMS = {

    "ADMIN": [
        "ver_estoque",
        "gerenciar_materiais",
        "registrar_entrada",
        "registrar_saida",
        "ver_relatorios",
    ],

    "ALMOXARIFE": [
        "ver_estoque",
        "gerenciar_materiais",
        "registrar_entrada",
        "registrar_saida",
        "ver_relatorios",
    ],

    "AUX_ALMOX": [
        "ver_estoque",
        "registrar_entrada",
        "registrar_saida",
    ],

    "CONSULTA": [
        "ver_estoque",
        "ver_relatorios",
    ],
}


def has_perm(user, perm_name: str) -> bool:
    return perm_name in ROLE_PERMS.get(getattr(user, "role", None), [])


# -------------------------------
# Verificação por permissão
# -------------------------------
def perm_required(perm_name: str):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({"code": "UNAUTHENTICATED", "message": "Faça login."}), 401
            if not has_perm(current_user, perm_name):
                return jsonify({
                    "code": "FORBIDDEN",
                    "message": "Você não tem permissão para esta operação.",
                }), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
