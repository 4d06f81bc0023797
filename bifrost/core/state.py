#!/usr/bin/env python3
"""
BIFROST - Sidecar State File

A small JSON document next to the keypairs that remembers the lookup table
between runs. Unknown keys are carried through every read-modify-write.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey

from bifrost.exceptions import StateFileError
from bifrost.protocol.pda import parse_address

LUT_KEY = "addressLUT"
LUT_CREATED_KEY = "lutCreatedAt"


class StateFile:
    """Read-modify-write access to the sidecar JSON state."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def read(self) -> Dict[str, Any]:
        """Current contents, or {} if the file does not exist yet."""
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StateFileError(f"Cannot read state file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StateFileError(f"State file {self.path} must hold a JSON object")
        return data

    def update(self, **fields: Any) -> Dict[str, Any]:
        """Merge `fields` into the stored document and write it back atomically."""
        data = self.read()
        data.update(fields)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2))
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StateFileError(f"Cannot write state file {self.path}: {e}") from e
        return data

    def lookup_table(self) -> Optional[Pubkey]:
        """The saved LUT address, or None if no table has been created yet."""
        value = self.read().get(LUT_KEY)
        if not value:
            return None
        return parse_address(str(value))

    def save_lookup_table(self, table: Pubkey) -> Dict[str, Any]:
        return self.update(**{
            LUT_KEY: str(table),
            LUT_CREATED_KEY: datetime.now(timezone.utc).isoformat(),
        })
