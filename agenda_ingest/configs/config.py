# agenda_ingest/configs/config.py
import yaml
from pathlib import Path
from functools import lru_cache
from typing import Optional


class Config:
    """
    Configuration for the agenda ingestion pipeline.
    """

    # This points to agenda_ingest/configs/
    CONFIG_DIR = Path(__file__).parent.resolve()
    INGESTION_CONFIG_PATH = CONFIG_DIR / "ingestion.yaml"

    @classmethod
    @lru_cache
    def load_ingestion_config(cls, path: Optional[Path] = None) -> dict:
        """Loads the YAML configuration for the ingestion pipeline."""
        config_path = Path(path) if path else cls.INGESTION_CONFIG_PATH
        if not config_path.exists():
            raise FileNotFoundError(f"Missing config at {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    @classmethod
    def section(cls, name: str, path: Optional[Path] = None) -> dict:
        """Return one top-level section of the ingestion config (empty if absent)."""
        return dict(cls.load_ingestion_config(path).get(name) or {})
