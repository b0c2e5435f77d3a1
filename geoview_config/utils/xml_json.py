"""Conversion of OGC capabilities XML into plain dictionaries."""

import xml.etree.ElementTree as ET
from typing import Any

from geoview_config.core.exceptions import ServiceMetadataError


def local_name(tag: str) -> str:
    """Strip the namespace from an element or attribute name."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def element_to_dict(elem: ET.Element) -> Any:
    """
    Convert an element to a dictionary.

    Attributes become keys, child elements become keys (a list when repeated)
    and text content of an element that also has attributes or children is stored
    under ``value``. A bare element converts to its stripped text, or None.
    """
    children = list(elem)
    text = (elem.text or "").strip()

    if not children and not elem.attrib:
        return text or None

    result: dict[str, Any] = {local_name(k): v for k, v in elem.attrib.items()}
    for child in children:
        key = local_name(child.tag)
        value = element_to_dict(child)
        if key in result:
            existing = result[key]
            if not isinstance(existing, list):
                result[key] = [existing]
            result[key].append(value)
        else:
            result[key] = value

    if text:
        result["value"] = text
    return result


def parse_xml(text: str | bytes) -> tuple[str, dict]:
    """
    Parse an XML document.

    Args:
        text: XML document, as bytes when the encoding declaration must be honoured

    Returns:
        Tuple of (local name of the root element, converted root element)

    Raises:
        ServiceMetadataError: If the document is not well-formed XML
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise ServiceMetadataError(f"Invalid XML document: {e}") from e

    converted = element_to_dict(root)
    if not isinstance(converted, dict):
        converted = {"value": converted}
    return local_name(root.tag), converted


def as_list(value: Any) -> list:
    """Wrap a single converted element in a list; None becomes an empty list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def text_of(value: Any) -> str | None:
    """Text of a converted element that may carry attributes."""
    if isinstance(value, dict):
        return value.get("value")
    return value
