import logging
import os
from pathlib import Path

# Project root (this file lives in ordersheet/system_config.py)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


class SystemConfig:
    """
    Process-level paths and limits, resolved from environment variables
    with project-relative defaults. A project `.env` file is read once;
    real environment variables always win over it.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(SystemConfig, cls).__new__(cls)
            cls._instance._load_env_file()
        return cls._instance

    def _load_env_file(self):
        """Load .env file into os.environ if not already set."""
        env_path = PROJECT_ROOT / ".env"
        if env_path.exists():
            try:
                with open(env_path, "r", encoding="utf-8") as f:
                    for line in f:
                        line = line.strip()
                        if not line or line.startswith("#"):
                            continue
                        if "=" in line:
                            key, value = line.split("=", 1)
                            key = key.strip()
                            value = value.strip().strip("'").strip('"')
                            # OS env var takes precedence
                            if key and key not in os.environ:
                                os.environ[key] = value
                logger.info("Loaded .env file for environment configuration.")
            except OSError as e:
                logger.warning(f"Failed to parse .env file: {e}")

    @property
    def settings_path(self) -> Path:
        """JSON file holding synonyms, exclusion patterns and duplicate-check settings."""
        return self._resolve_path("settings", "database/settings.json", env_key="ORDERSHEET_SETTINGS")

    @property
    def rulesets_dir(self) -> Path:
        """
        Mapping rule sets, one JSON file per destination.
        Structure: rulesets/{kind}/{destination_key}.json
        """
        return self._resolve_path("rulesets", "database/rulesets", env_key="RULESETS_DIR")

    @property
    def send_log_path(self) -> Path:
        return self._resolve_path("send_log", "database/send_log.json", env_key="SEND_LOG_PATH")

    @property
    def output_dir(self) -> Path:
        return self._resolve_path("output", "output/order_sheets", env_key="OUTPUT_DIR")

    @property
    def run_log_dir(self) -> Path:
        return self._resolve_path("run_log", "run_log", env_key="RUN_LOG_DIR")

    @property
    def log_level(self) -> str:
        return os.getenv("ORDERSHEET_LOG_LEVEL", "INFO")

    @property
    def send_timeout(self) -> float:
        """Seconds a single mail transport call may take."""
        env_val = os.getenv("SEND_TIMEOUT_SECONDS")
        if env_val:
            try:
                return float(env_val)
            except ValueError:
                logger.warning(f"Ignoring invalid SEND_TIMEOUT_SECONDS={env_val!r}")
        return 30.0

    def _resolve_path(self, key: str, default_relative: str, env_key: str = None) -> Path:
        # 1. Environment variable
        check_env = env_key if env_key else key.upper()
        env_val = os.getenv(check_env)

        if env_val:
            path_obj = Path(env_val)
            if path_obj.is_absolute():
                return path_obj.resolve()
            return (PROJECT_ROOT / path_obj).resolve()

        # 2. Default relative to the project root
        return (PROJECT_ROOT / default_relative).resolve()


# Singleton instance
sys_config = SystemConfig()
