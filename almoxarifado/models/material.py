from decimal import Decimal

from almoxarifado.extensions import db
from almoxarifado.scopes import CLIENT_PREFIX
from almoxarifado.utils import format_quantity, utcnow

UNIT_TYPES = {
    "pç": "Peça",
    "kg": "Quilograma",
    "m": "Metro",
    "L": "Litro",
    "UN": "Unidade",
    "JG": "Jogo",
    "CX": "Caixa",
    "PCT": "Pacote",
}


class Material(db.Model):
    __tablename__ = "materials"
    __table_args__ = (
        db.UniqueConstraint("scope", "material_number", name="uq_materials_scope_number"),
        db.CheckConstraint("current_quantity >= 0", name="ck_materials_quantity_non_negative"),
        db.CheckConstraint("minimum_stock >= 0", name="ck_materials_minimum_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(20), nullable=False, index=True)  # central | maintenance | client:N
    material_number = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(200), nullable=False)
    unit_type = db.Column(db.String(10), nullable=False)

    # só o StockEngine altera current_quantity / is_low_stock
    current_quantity = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    minimum_stock = db.Column(db.Numeric(12, 3), nullable=False, default=Decimal("0"))
    is_low_stock = db.Column(db.Boolean, nullable=False, default=False, index=True)

    addressing = db.Column(db.String(40))

    # armazéns de clientes
    part_number = db.Column(db.String(60))
    client_name = db.Column(db.String(200))

    active = db.Column(db.Boolean, nullable=False, default=True)
    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    movements = db.relationship(
        "MovementRecord",
        back_populates="material",
        lazy="dynamic",
        order_by="MovementRecord.id",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_client_scope(self) -> bool:
        return self.scope.startswith(CLIENT_PREFIX)

    def refresh_low_stock(self) -> bool:
        current = self.current_quantity if self.current_quantity is not None else Decimal("0")
        minimum = self.minimum_stock if self.minimum_stock is not None else Decimal("0")
        self.is_low_stock = current < minimum
        return self.is_low_stock

    def to_dict(self):
        data = {
            "id": self.id,
            "scope": self.scope,
            "material_number": self.material_number,
            "description": self.description,
            "unit_type": self.unit_type,
            "current_quantity": format_quantity(self.current_quantity),
            "minimum_stock": format_quantity(self.minimum_stock),
            "is_low_stock": bool(self.is_low_stock),
            "addressing": self.addressing,
            "active": bool(self.active),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if self.is_client_scope:
            data["part_number"] = self.part_number
            data["client_name"] = self.client_name
        return data

    def __repr__(self):
        return f"<Material {self.scope}#{self.material_number} {self.description}>"
