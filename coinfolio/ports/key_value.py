"""KeyValueStore Port Interface.

Contract: a persistence slot addressed by string keys holding text values.
An absent key reads as None.
"""

from __future__ import annotations

from typing import Optional, Protocol


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, text: str) -> None: ...
