from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from almoxarifado.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, default="Usuário")
    login = db.Column(db.String(80), nullable=False, unique=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(30), nullable=False, default="CONSULTA")
    active = db.Column(db.Boolean, nullable=False, default=True)

    @property
    def is_active(self):
        return bool(self.active)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "login": self.login, "role": self.role}

    def __repr__(self):
        return f"<User {self.login} ({self.role})>"
