from datetime import datetime, timezone
from typing import Optional

def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column in this app stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
