"""Esquemas Pydantic para el webhook interno de revalidación"""
from typing import Any, List, Optional

from pydantic import BaseModel


class RevalidateRequest(BaseModel):
    # Se acepta cualquier valor; los ids no válidos se filtran después
    lbIds: Optional[Any] = None

    def valid_ids(self) -> List[str]:
        """Ids no vacíos, sin duplicados y en el orden recibido"""
        if not isinstance(self.lbIds, list):
            return []
        ids = [i for i in self.lbIds if isinstance(i, str) and i.strip()]
        return list(dict.fromkeys(ids))


class RevalidateResponse(BaseModel):
    ok: bool
    revalidated: List[str]
    count: int
