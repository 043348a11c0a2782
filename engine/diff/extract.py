# engine/diff/extract.py

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

# Audit producers nest their detection list differently.
# Candidates are tried in order; the first present field wins.
NESTED_FIELDS: Dict[str, Sequence[str]] = {
    "BloatwareDetection": ("detected_bloatware", "DetectedItems"),
    "EssentialApps": ("missing_apps", "MissingApps"),
    "SystemOptimization": ("optimization_opportunities", "Recommendations"),
    "Telemetry": ("active_telemetry", "ActiveTelemetry"),
    "StartupItems": ("startup_items", "StartupItems"),
    "Services": ("services", "Services"),
    "WindowsUpdates": ("pending_updates", "PendingUpdates"),
    "AppUpgrade": ("upgrades_available", "pending_upgrades", "AvailableUpgrades"),
    "SecurityAudit": ("recommendations", "Recommendations"),
}


def extract_detections(
    audit_results: Optional[Mapping[str, Any]],
    key: str,
    nested_field: Union[str, Sequence[str], None] = None,
) -> List[Any]:
    """
    Raw detection list for one audit key.

    Missing key or null payload -> []. Never raises on shape.
    """

    if not audit_results:
        return []

    payload = audit_results.get(key)
    if payload is None:
        return []

    if nested_field is None:
        candidates: Sequence[str] = NESTED_FIELDS.get(key, ())
    elif isinstance(nested_field, str):
        candidates = (nested_field,)
    else:
        candidates = nested_field

    if isinstance(payload, Mapping):
        for name in candidates:
            if name in payload:
                payload = payload[name]
                break

    return _as_list(payload)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return list(value)
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return [value]
