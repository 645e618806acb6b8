import logging

from flask import Flask, jsonify

from .config import Config
from .errors import WarehouseError
from .extensions import db, login_manager
from .models.user import User

logger = logging.getLogger(__name__)


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    configure_logging(app)

    db.init_app(app)
    login_manager.init_app(app)

    from . import services
    services.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"code": "UNAUTHENTICATED", "message": "Faça login."}), 401

    # Blueprints
    from .blueprints.auth import auth_bp
    from .blueprints.estoque import estoque_bp
    from .blueprints.relatorios import relatorios_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(estoque_bp)
    app.register_blueprint(relatorios_bp)

    @app.errorhandler(WarehouseError)
    def handle_warehouse_error(e):
        response = jsonify(e.to_dict())
        response.status_code = e.http_status
        if getattr(e, "retryable", False):
            response.headers["Retry-After"] = "1"
        return response

    # cria tabelas + admin padrão
    with app.app_context():
        db.create_all()
        _seed_admin(app)

    return app


def configure_logging(app):
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    pkg_logger = logging.getLogger(__name__)
    pkg_logger.setLevel(level)
    if not pkg_logger.handlers:
        from flask.logging import default_handler
        pkg_logger.addHandler(default_handler)


def _seed_admin(app):
    login = app.config.get("ADMIN_LOGIN", "admin")
    admin = db.session.execute(db.select(User).filter_by(login=login)).scalar_one_or_none()
    if not admin:
        u = User(name="Administrador", login=login, role="ADMIN", active=True)
        u.set_password(app.config.get("ADMIN_PASSWORD", "123"))
        db.session.add(u)
        db.session.commit()
        logger.info("Usuário administrador '%s' criado", login)
