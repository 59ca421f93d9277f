import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from src.rules.models import Rules

ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TELEMETRY_BASE_URL": ("sync", "base_url"),
    "TELEMETRY_API_KEY": ("sync", "api_key"),
}


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data.setdefault(section, {})[key] = value

    data_dir = os.environ.get("TELEMETRY_DATA_DIR")
    if data_dir:
        storage = data.setdefault("storage", {})
        storage["db_path"] = str(Path(data_dir) / "telemetry.db")
        storage["state_path"] = str(Path(data_dir) / "state.json")

    return data


def load_rules(path: Path) -> Rules:
    """
    Load and validate the rules file.
    Raises FileNotFoundError if file missing.
    Raises ValueError if YAML or schema invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Rules file not found at: {path}")

    with open(path) as f:
        content = f.read()

    # Rules may be embedded in a markdown ```yaml block
    lines = content.splitlines()
    yaml_lines = []
    in_block = False
    found_block = False

    for line in lines:
        s_line = line.strip()
        if s_line.startswith("```yaml"):
            in_block = True
            found_block = True
            continue
        if in_block and s_line.startswith("```"):
            break
        if in_block:
            yaml_lines.append(line)

    clean_content = "\n".join(yaml_lines) if found_block else content

    try:
        data = yaml.safe_load(clean_content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in rules file: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Rules file must contain a mapping at the top level")

    try:
        return Rules.model_validate(_apply_env_overrides(data))
    except ValidationError as e:
        raise ValueError(f"Rules validation failed:\n{e}") from e
