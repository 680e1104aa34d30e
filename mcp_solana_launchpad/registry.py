import json
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_solana_launchpad.errors import StateConflictError, ValidationError
from mcp_solana_launchpad.sale import SaleInstance

logger = get_logger(__name__)


class SaleRegistry:
    """Ordered set of every sale instance spawned by a factory. Entries are never removed."""

    def __init__(self):
        self._entries: List[Pubkey] = []
        self._sales: Dict[Pubkey, SaleInstance] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[SaleInstance]:
        return (self._sales[sale_id] for sale_id in self._entries)

    def add(self, sale: SaleInstance) -> None:
        if sale.address in self._sales:
            raise StateConflictError(f"Sale {sale.address} is already registered")
        self._entries.append(sale.address)
        self._sales[sale.address] = sale
        logger.debug(f"Registered sale {sale.address} (#{len(self._entries) - 1})")

    def is_registered(self, sale_id: Pubkey) -> bool:
        return sale_id in self._sales

    def count(self) -> int:
        return len(self._entries)

    def entry_at(self, index: int) -> Pubkey:
        if not 0 <= index < len(self._entries):
            raise ValidationError(f"Registry index {index} out of range (count={len(self._entries)})")
        return self._entries[index]

    def get(self, sale_id: Pubkey) -> Optional[SaleInstance]:
        """Retrieves a sale instance by its identity."""
        return self._sales.get(sale_id)

    # Entries are append-only, so a snapshot is the entry count
    def snapshot(self) -> int:
        return len(self._entries)

    def restore(self, snapshot: int) -> None:
        for sale_id in self._entries[snapshot:]:
            del self._sales[sale_id]
        del self._entries[snapshot:]

    def commit(self, snapshot: int) -> None:
        pass

    def save_sale_config(self, sale: SaleInstance, directory: Union[str, Path]) -> bool:
        """Writes the sale's configuration to ``<directory>/<sale_id>.json``."""
        config_path = Path(directory)
        config_path.mkdir(parents=True, exist_ok=True)
        file_path = config_path / f"{sale.address}.json"
        try:
            with open(file_path, "w") as f:
                json.dump(sale.config.model_dump(mode="json"), f, indent=4)
            logger.info(f"Saved sale configuration to {file_path}")
            return True
        except OSError as e:
            logger.error(f"Error saving sale configuration to {file_path}: {e}")
            return False
