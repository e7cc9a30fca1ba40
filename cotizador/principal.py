"""Acting user of a request or client session."""
from datetime import datetime, timezone
from typing import NamedTuple, Optional


class Principal(NamedTuple):
    """Identity of the user editing quotes."""
    id: int
    name: Optional[str] = None

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


def utcnow():
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
