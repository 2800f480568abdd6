"""
Response Filter

Shapes a successful dashboard payload for the caller: drops the sections
their permissions hide, strips excluded fields and attaches the
``_permissionInfo`` digest. Routes run it as an explicit stage after the
analytics service returns and before serialization.

This stage fails open. If shaping raises, the unfiltered payload is sent
and the failure is logged; it is the only place in the service where an
error is not propagated.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from ...models.enums import SECTION_NAMES
from ...models.permission_models import PermissionInfo

logger = logging.getLogger(__name__)

PERMISSION_INFO_KEY = "_permissionInfo"


def _strip(value: Any, fields: frozenset) -> Any:
    if isinstance(value, dict):
        return {key: item for key, item in value.items() if key not in fields}
    return value


def filter_payload(
    payload: Any, info: PermissionInfo, excluded_fields: Optional[Iterable[str]] = None
) -> Any:
    """
    Return a shaped copy of payload; the input is not modified.

    Non-dict payloads are returned unchanged. Excluded fields are removed
    from the payload itself and from the dict items of its list values.
    """
    if not isinstance(payload, dict):
        return payload

    filtered = dict(payload)
    for section in SECTION_NAMES:
        if section in filtered and not info.visible_sections.get(section, True):
            del filtered[section]

    fields = frozenset(excluded_fields or ())
    if fields:
        filtered = _strip(filtered, fields)
        for key, value in filtered.items():
            if isinstance(value, list):
                filtered[key] = [_strip(item, fields) for item in value]

    filtered[PERMISSION_INFO_KEY] = info.model_dump(by_alias=True)
    return filtered


def apply_response_filter(
    payload: Any, info: PermissionInfo, excluded_fields: Optional[Iterable[str]] = None
) -> Any:
    """
    Fail-open wrapper around filter_payload.

    Returns:
        The shaped payload, or the original payload if shaping failed
    """
    try:
        return filter_payload(payload, info, excluded_fields)
    except Exception:
        logger.error("Response filtering failed, sending unfiltered payload", exc_info=True)
        return payload


def section_summary(visible_sections: Dict[str, bool]) -> Dict[str, Any]:
    """Visible and hidden section names, for permission previews."""
    return {
        "visibleSections": visible_sections,
        "hiddenSections": [name for name, visible in visible_sections.items() if not visible],
    }
