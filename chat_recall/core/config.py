"""
Configuration management for chat-recall
Handles loading and saving RAG settings, with environment overrides
for secrets and deployment-specific values
"""

import json
import os
from pathlib import Path
from typing import Dict, Any, Optional


# Environment variables that override (or supply) settings
ENV_OVERRIDES = {
    "DATABASE_URL": "database_url",
    "OPENAI_API_KEY": "openai_api_key",
    "EMBEDDING_MODEL": "embedding_model",
}


class Config:
    """Configuration manager for the ingestion and retrieval pipeline"""

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            config_dir: Path to configuration directory (defaults to ./config)
        """
        if config_dir is None:
            config_dir = Path(__file__).parent.parent.parent / "config"

        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        self.settings_file = self.config_dir / "rag_settings.json"

        # Defaults first so a partial settings file still yields every key
        self.settings = self._default_settings()
        self.settings.update(self._load_json(self.settings_file, self._default_settings()))

    def _load_json(self, file_path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
        """Load JSON file or return default if file doesn't exist"""
        if file_path.exists():
            with open(file_path, 'r') as f:
                return json.load(f)
        else:
            # Create file with defaults
            self._save_json(file_path, default)
            return default

    def _save_json(self, file_path: Path, data: Dict[str, Any]) -> None:
        """Save data to JSON file"""
        with open(file_path, 'w') as f:
            json.dump(data, f, indent=2)

    def _default_settings(self) -> Dict[str, Any]:
        """Default pipeline settings"""
        return {
            # Chunker
            "chunk_target_chars": 1000,
            "chunk_min_chars": 400,
            "chunk_max_chars": 1600,
            # Embedding client
            "embedding_model": "text-embedding-3-small",
            "embedding_batch_size": 64,
            "embedding_max_chars": 8000,
            "embedding_pacing_seconds": 0.2,
            # Ingestion
            "upsert_batch_size": 400,
            "missing_embedding_page_size": 1000,
            "embedding_update_batch_size": 200,
            # Hybrid retrieval
            "match_threshold": 0.2,
            "lexical_limit": 5000,
            "final_k": 50,
            # Legacy single-table search
            "legacy_match_threshold": 0.78,
            "legacy_match_count": 10,
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value

        Environment overrides win over the settings file.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        for env_var, setting_key in ENV_OVERRIDES.items():
            if setting_key == key and os.environ.get(env_var):
                return os.environ[env_var]

        return self.settings.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value and save to disk

        Args:
            key: Configuration key
            value: Value to set
        """
        self.settings[key] = value
        self._save_json(self.settings_file, self.settings)

    def get_database_url(self) -> Optional[str]:
        """PostgreSQL connection string (DATABASE_URL)"""
        return self.get("database_url")

    def get_openai_api_key(self) -> Optional[str]:
        """OpenAI API key (OPENAI_API_KEY)"""
        return self.get("openai_api_key")
