from typing import Optional

from pydantic import BaseModel


class SessionContext(BaseModel):
    """
    Which profile belongs to the current device.

    Passed explicitly into the wizard and browse code; the HTTP layer reads it
    from, and writes it back to, a cookie.
    """
    my_profile_id: Optional[str] = None

    def owns(self, profile_id: str) -> bool:
        return self.my_profile_id is not None and self.my_profile_id == profile_id
