from sqlalchemy import event
from sqlalchemy.orm import object_session

from almoxarifado.errors import ImmutableRecordError
from almoxarifado.extensions import db
from almoxarifado.movement_types import Direction
from almoxarifado.utils import format_quantity


class MovementRecord(db.Model):
    """Lançamento do histórico de estoque. Só inserção: nunca editado nem excluído."""

    __tablename__ = "movement_records"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_movement_records_quantity_positive"),
        db.Index("ix_movement_records_scope_performed_at", "scope", "performed_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    material_id = db.Column(db.Integer, db.ForeignKey("materials.id"), nullable=False, index=True)
    scope = db.Column(db.String(20), nullable=False)
    direction = db.Column(db.String(10), nullable=False)  # entry | exit
    subtype = db.Column(db.String(40), nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    subtype_fields = db.Column(db.JSON, nullable=False, default=dict)

    performed_by = db.Column(db.String(120), nullable=False)
    performed_at = db.Column(db.DateTime, nullable=False)
    batch_id = db.Column(db.String(32), index=True)  # só saídas

    material = db.relationship("Material", back_populates="movements")

    @property
    def direction_enum(self) -> Direction:
        return Direction(self.direction)

    @property
    def signed_quantity(self):
        return self.quantity if self.direction == Direction.ENTRY.value else -self.quantity

    def to_dict(self):
        return {
            "id": self.id,
            "material_id": self.material_id,
            "scope": self.scope,
            "direction": self.direction,
            "subtype": self.subtype,
            "quantity": format_quantity(self.quantity),
            "fields": dict(self.subtype_fields or {}),
            "performed_by": self.performed_by,
            "performed_at": self.performed_at.isoformat() if self.performed_at else None,
            "batch_id": self.batch_id,
        }

    def __repr__(self):
        return f"<MovementRecord {self.id} {self.direction} {self.subtype} {self.quantity}>"


@event.listens_for(MovementRecord, "before_update")
def _block_update(mapper, connection, target):
    session = object_session(target)
    if session is None or session.is_modified(target, include_collections=False):
        raise ImmutableRecordError(target.id, "update")


@event.listens_for(MovementRecord, "before_delete")
def _block_delete(mapper, connection, target):
    raise ImmutableRecordError(target.id, "delete")
