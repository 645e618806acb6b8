from flask import Blueprint

estoque_bp = Blueprint("estoque", __name__, url_prefix="/estoque")

from . import routes  # noqa: E402,F401
