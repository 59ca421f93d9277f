import logging
import os
import sys
from pathlib import Path

from src.rules.loader import load_rules
from src.rules.models import Rules

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_RULES_PATH = PROJECT_ROOT / "rules.yaml"
MIGRATIONS_DIR = PROJECT_ROOT / "migrations"

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Root logging setup for entry points."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def load_app_rules(path: str | Path | None = None) -> Rules:
    """
    Load rules.yaml for an entry point.

    Resolution order: explicit path, TELEMETRY_RULES, project root.
    Exits the process when the file is missing or invalid.
    """
    rules_path = Path(path or os.environ.get("TELEMETRY_RULES") or DEFAULT_RULES_PATH)
    if not rules_path.exists():
        print(f"CRITICAL: Rules file {rules_path} not found.", file=sys.stderr)
        sys.exit(1)

    try:
        return load_rules(rules_path)
    except ValueError as e:
        print(f"CRITICAL: {e}", file=sys.stderr)
        sys.exit(1)


def validate_runtime(rules: Rules) -> None:
    """
    Validate operational requirements before startup.
    """
    # 1. Data directories must be creatable
    for target in (rules.storage.db_path, rules.storage.state_path):
        directory = os.path.dirname(target)
        if directory:
            os.makedirs(directory, exist_ok=True)

    # 2. Sync needs a backend
    if rules.sync.enabled and not rules.sync.base_url:
        logger.warning("Sync is enabled but sync.base_url is empty; sync calls will fail")

    logger.info("Configuration validated (db=%s)", rules.storage.db_path)
