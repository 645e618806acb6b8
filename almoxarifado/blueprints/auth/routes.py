from flask import jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from almoxarifado.extensions import db
from almoxarifado.models import User
from . import auth_bp


@auth_bp.post("/login")
def login_post():
    data = request.get_json(silent=True) or request.form
    login = (data.get("login") or "").strip()
    senha = (data.get("senha") or "").strip()

    u = db.session.execute(db.select(User).filter_by(login=login, active=True)).scalar_one_or_none()
    if not u or not u.check_password(senha):
        return jsonify({"code": "INVALID_LOGIN", "message": "Login inválido."}), 401

    login_user(u)
    return jsonify(u.to_dict())


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Você saiu do sistema."})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


@auth_bp.post("/trocar-senha")
@login_required
def trocar_senha():
    data = request.get_json(silent=True) or {}
    senha_atual = data.get("senha_atual") or ""
    nova_senha = data.get("nova_senha") or ""
    confirmar = data.get("confirmar") or ""

    if not current_user.check_password(senha_atual):
        return jsonify({"code": "INVALID_PASSWORD", "message": "Senha atual incorreta."}), 400

    if not nova_senha or nova_senha != confirmar:
        return jsonify({"code": "PASSWORD_MISMATCH", "message": "As senhas não coincidem."}), 400

    current_user.set_password(nova_senha)
    db.session.commit()
    return jsonify({"message": "Senha alterada com sucesso."})
