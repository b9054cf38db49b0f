from __future__ import annotations

from typing import Any

# Marks a keyword argument the caller did not pass, so ``None`` can mean "clear".
UNSET: Any = object()
