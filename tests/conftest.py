"""
Fixtures da suíte de testes.

Cada teste recebe uma aplicação nova sobre um SQLite em arquivo temporário
(arquivo, e não memória, para que threads diferentes enxerguem o mesmo banco
nos testes de concorrência).
"""
import pytest

from almoxarifado import create_app
from almoxarifado.config import TestConfig
from almoxarifado.extensions import db
from almoxarifado.models import User
from almoxarifado.services import get_warehouse

@pytest.fixture
def app(tmp_path):
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'almoxarifado.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False, "timeout": 30}}

    app = create_app(_Config)
    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def wh(ctx):
    return get_warehouse()


@pytest.fixture
def make_material(wh):
    """Cadastra um material e, se ``quantity`` vier, dá entrada do saldo inicial."""

    def _make(scope="central", quantity=None, minimum_stock="0",
              description="Óleo Motor 15W40", unit_type="L", **kwargs):
        mat = wh.catalog.create_material(scope, description, unit_type, minimum_stock, **kwargs)
        if quantity is not None:
            wh.engine.commit_entry(mat.id, "entrada_comum", quantity, {}, actor="carga-inicial")
        return mat

    return _make


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(login, role, senha="senha123"):
        with app.app_context():
            u = User(name=login.title(), login=login, role=role, active=True)
            u.set_password(senha)
            db.session.add(u)
            db.session.commit()
        return login, senha

    return _make


@pytest.fixture
def logged_client(client):
    r = client.post("/auth/login", json={"login": "admin", "senha": "123"})
    assert r.status_code == 200
    return client
