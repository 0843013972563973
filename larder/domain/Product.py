"""Product domain entity: opaque id, display name, description. Owned by the external catalog."""
from uuid import UUID


class Product:
    def __init__(self, id: UUID, name: str = "", description: str = ""):
        self.id = id
        self.name = name
        self.description = description

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"

    __repr__ = __str__

    def __eq__(self, other) -> bool:
        if not isinstance(other, Product):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    @staticmethod
    def from_dict(data):
        '''Creates a Product from its persisted record. Ignores unknown keys.'''
        return Product(
            id=UUID(str(data["id"])),
            name=data.get("name") or "",
            description=data.get("description") or "",
        )

    def to_dict(self):
        return {
            "id": str(self.id),
            "name": self.name,
            "description": self.description,
        }
