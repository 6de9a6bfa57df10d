"""
JSON persistence for company settings and the client roster.

Settings are stored as a single JSON object and clients as a JSON array,
both under DATA_DIR. Files are read once at startup and written only by
explicit save actions. A missing or malformed file falls back to defaults.
"""

import json
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .config import CLIENTS_FILENAME, DATA_DIR, SETTINGS_FILENAME, logger
from .reconcile import upsert_client
from .schemas import Client, CompanySettings


def _read_json(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def load_settings(path: Path) -> CompanySettings:
    """
    Load company settings, falling back to defaults.

    Args:
        path: Path to the settings JSON file

    Returns:
        Stored CompanySettings, or defaults if the file is missing or malformed
    """
    if not path.exists():
        return CompanySettings()

    try:
        return CompanySettings.model_validate(_read_json(path))
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Error loading settings from {path}: {e}")
        return CompanySettings()


def save_settings(path: Path, settings: CompanySettings) -> None:
    """Write company settings to disk."""
    _write_json(path, settings.model_dump(mode="json", by_alias=True))
    logger.info(f"Saved settings to: {path}")


def load_clients(path: Path) -> list[Client]:
    """
    Load the client roster, falling back to an empty list.

    The whole roster is discarded when the file is malformed; a partial
    roster would break the uniqueness of names.
    """
    if not path.exists():
        return []

    try:
        data = _read_json(path)
        if not isinstance(data, list):
            raise ValueError("clients file must contain a JSON array")
        return [Client.model_validate(entry) for entry in data]
    except (OSError, ValueError, ValidationError) as e:
        logger.error(f"Error loading clients from {path}: {e}")
        return []


def save_clients(path: Path, clients: list[Client]) -> None:
    """Write the client roster to disk."""
    _write_json(path, [client.model_dump(mode="json", by_alias=True) for client in clients])
    logger.info(f"Saved {len(clients)} clients to: {path}")


class LocalStore:
    """
    Process-wide settings and client roster backed by two JSON files.

    ``settings`` and ``clients`` are snapshots handed to processing code;
    they change only through save_settings() and save_client().
    """

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else DATA_DIR
        self.settings_path = self.data_dir / SETTINGS_FILENAME
        self.clients_path = self.data_dir / CLIENTS_FILENAME
        self.settings = load_settings(self.settings_path)
        self.clients = load_clients(self.clients_path)

    def save_settings(self, settings: CompanySettings) -> CompanySettings:
        save_settings(self.settings_path, settings)
        self.settings = settings
        return settings

    def save_client(self, client: Client) -> list[Client]:
        """Upsert a client by case-insensitive name and persist the roster."""
        clients = upsert_client(self.clients, client)
        save_clients(self.clients_path, clients)
        self.clients = clients
        return clients
