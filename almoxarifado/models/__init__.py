from .user import User
from .material import Material, UNIT_TYPES
from .movement import MovementRecord

__all__ = ["User", "Material", "MovementRecord", "UNIT_TYPES"]
