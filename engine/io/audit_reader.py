import json
from pathlib import Path
from typing import Any, Dict

from engine.logger import get_logger
from engine.planner.exceptions import ConfigurationError

log = get_logger("audit")


def load_audit_results(path: str) -> Dict[str, Any]:
    """
    Load prior audit output.

    - a JSON file holding {audit_key: payload}
    - or a directory of `<audit_key>.json` files, one payload each
    """

    p = Path(path)

    if p.is_dir():
        results: Dict[str, Any] = {}
        for file in sorted(p.glob("*.json")):
            results[file.stem] = _read_json(file)
        log.info(f"Loaded {len(results)} audit payloads from {p}")
        return results

    document = _read_json(p)
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError(f"Audit results in {path} must be an object")

    log.info(f"Loaded {len(document)} audit payloads from {p}")
    return document


def _read_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8-sig") as f:
            return json.load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Audit results not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Audit file {path} is not valid JSON: {exc}") from exc
