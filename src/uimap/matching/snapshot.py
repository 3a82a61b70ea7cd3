"""Accessibility snapshot loading.

Accepts the JSON printed by AXe (`axe describe-ui`) as well as trees that
were already normalized by this package (the enriched hierarchy shape).
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from ..errors import InputError
from ..models.records import AccessibilityElement, Frame

logger = logging.getLogger(__name__)

# AXe `type` values to UIKit class names.
TYPE_MAP: Dict[str, str] = {
    "Application": "UIApplication",
    "Window": "UIWindow",
    "GenericElement": "UIView",
    "Button": "UIButton",
    "StaticText": "UILabel",
    "Image": "UIImageView",
    "TextField": "UITextField",
    "SecureTextField": "UITextField",
    "TextView": "UITextView",
    "ScrollView": "UIScrollView",
    "Table": "UITableView",
    "Cell": "UITableViewCell",
    "CollectionView": "UICollectionView",
    "NavigationBar": "UINavigationBar",
    "TabBar": "UITabBar",
    "Toolbar": "UIToolbar",
    "SearchField": "UISearchBar",
    "Switch": "UISwitch",
    "Slider": "UISlider",
    "Stepper": "UIStepper",
    "ProgressIndicator": "UIProgressView",
    "ActivityIndicator": "UIActivityIndicatorView",
    "PageIndicator": "UIPageControl",
    "Picker": "UIPickerView",
    "DatePicker": "UIDatePicker",
    "Map": "MKMapView",
    "WebView": "WKWebView",
    "SegmentedControl": "UISegmentedControl",
    "Alert": "UIAlertController",
    "Sheet": "UIAlertController",
    "Heading": "UILabel",
    "Link": "UIButton",
    "Group": "UIView",
}

DEFAULT_ELEMENT_TYPE = "UIView"


def _number(value: Any) -> float:
    try:
        return round(float(value), 2)
    except (TypeError, ValueError):
        return 0.0


def _frame(raw: Any) -> Frame:
    if not isinstance(raw, dict):
        return Frame()
    return Frame(
        x=_number(raw.get("x")),
        y=_number(raw.get("y")),
        w=_number(raw.get("w", raw.get("width"))),
        h=_number(raw.get("h", raw.get("height"))),
    )


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


def parse_element(node: Dict[str, Any]) -> AccessibilityElement:
    if "elementType" in node:
        element_type = str(node.get("elementType") or DEFAULT_ELEMENT_TYPE)
        raw_type = _text(node.get("rawType"))
        identifier = _text(node.get("identifier"))
        label = _text(node.get("label"))
        value = _text(node.get("value"))
    else:
        raw_type = str(node.get("type") or "GenericElement")
        element_type = TYPE_MAP.get(raw_type, DEFAULT_ELEMENT_TYPE)
        identifier = _text(node.get("AXUniqueId"))
        label = _text(node.get("AXLabel"))
        value = _text(node.get("AXValue"))
    children = [
        parse_element(child)
        for child in node.get("children") or []
        if isinstance(child, dict)
    ]
    return AccessibilityElement(
        element_type=element_type,
        identifier=identifier,
        label=label,
        frame=_frame(node.get("frame")),
        children=children,
        raw_type=raw_type,
        value=value,
        enabled=node.get("enabled") is not False,
    )


def parse_snapshot(data: Any) -> List[AccessibilityElement]:
    """Root elements of a snapshot; an empty or missing tree gives []."""
    if data is None:
        return []
    if isinstance(data, dict):
        if "nodes" in data:
            data = data.get("nodes") or []
        elif "elements" in data:
            data = data.get("elements") or []
        elif "type" in data or "elementType" in data:
            data = [data]
        else:
            raise InputError("Snapshot object is neither an element nor a tree of nodes")
    if not isinstance(data, list):
        raise InputError("Snapshot must be a JSON array or object")
    return [parse_element(node) for node in data if isinstance(node, dict)]


def load_snapshot(path: Path) -> List[AccessibilityElement]:
    if not path.exists():
        raise InputError("Snapshot not found", path=path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise InputError(f"Unable to read snapshot ({exc})", path=path) from exc
    if not text.strip():
        logger.info("Snapshot %s is empty", path)
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InputError(f"Malformed snapshot JSON at line {exc.lineno}", path=path) from exc
    return parse_snapshot(data)
