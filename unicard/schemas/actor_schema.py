import enum
from pydantic import BaseModel


class ActorRole(str, enum.Enum):
    ADMIN = "admin"
    STAFF = "staff"
    VIEWER = "viewer"


class Actor(BaseModel):
    """The already-resolved caller every core operation receives explicitly."""
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN.value
