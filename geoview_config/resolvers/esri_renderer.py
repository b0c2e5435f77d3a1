"""Conversion of ESRI renderers into layer styles."""

import logging

from geoview_config.models.style import GeometryStyle, StyleConfig, StyleInfo

logger = logging.getLogger(__name__)

# ESRI simple marker styles
MARKER_SYMBOLS = {
    "esriSMSCircle": "circle",
    "esriSMSCross": "+",
    "esriSMSDiamond": "diamond",
    "esriSMSSquare": "square",
    "esriSMSTriangle": "triangle",
    "esriSMSX": "X",
}

# ESRI line styles
LINE_STYLES = {
    "esriSLSDash": "dash",
    "esriSLSDashDot": "dash-dot",
    "esriSLSDashDotDot": "dash-dot-dot",
    "esriSLSDot": "dot",
    "esriSLSLongDash": "longDash",
    "esriSLSLongDashDot": "longDash-dot",
    "esriSLSNull": "null",
    "esriSLSShortDash": "shortDash",
    "esriSLSShortDashDot": "shortDash-dot",
    "esriSLSShortDashDotDot": "shortDash-dot-dot",
    "esriSLSShortDot": "shortDot",
    "esriSLSSolid": "solid",
}

# ESRI fill styles
FILL_STYLES = {
    "esriSFSBackwardDiagonal": "backwardDiagonal",
    "esriSFSCross": "cross",
    "esriSFSDiagonalCross": "diagonalCross",
    "esriSFSForwardDiagonal": "forwardDiagonal",
    "esriSFSHorizontal": "horizontal",
    "esriSFSNull": "null",
    "esriSFSSolid": "solid",
    "esriSFSVertical": "vertical",
}


def convert_color(color: list | None) -> str:
    """
    Convert an ESRI ``[r, g, b, a]`` color (alpha 0-255) to an rgba() string.

    A missing color is fully transparent.
    """
    if not color:
        return "rgba(0,0,0,0)"
    r, g, b = color[0], color[1], color[2]
    a = color[3] if len(color) > 3 else 255
    return f"rgba({r},{g},{b},{round(a / 255, 3)})"


def _convert_stroke(outline: dict | None) -> dict:
    outline = outline or {}
    return {
        "color": convert_color(outline.get("color")),
        "lineStyle": LINE_STYLES.get(outline.get("style"), "solid"),
        "width": outline.get("width", 1),
    }


def convert_symbol(symbol: dict | None) -> dict | None:
    """
    Convert an ESRI symbol to style settings.

    Args:
        symbol: ESRI symbol (esriSMS, esriSLS, esriSFS or esriPMS)

    Returns:
        Settings dictionary, or None for unsupported symbols
    """
    if not symbol:
        return None

    symbol_type = symbol.get("type")
    offset = [symbol.get("xoffset", 0), symbol.get("yoffset", 0)]

    if symbol_type == "esriSMS":
        return {
            "type": "simpleSymbol",
            "symbol": MARKER_SYMBOLS.get(symbol.get("style"), "circle"),
            "color": convert_color(symbol.get("color")),
            "size": symbol.get("size", 4),
            "rotation": symbol.get("angle", 0),
            "offset": offset,
            "stroke": _convert_stroke(symbol.get("outline")),
        }
    if symbol_type == "esriSLS":
        return {
            "type": "lineString",
            "stroke": _convert_stroke(symbol),
        }
    if symbol_type == "esriSFS":
        return {
            "type": "filledPolygon",
            "color": convert_color(symbol.get("color")),
            "fillStyle": FILL_STYLES.get(symbol.get("style"), "solid"),
            "stroke": _convert_stroke(symbol.get("outline")),
        }
    if symbol_type == "esriPMS":
        return {
            "type": "iconSymbol",
            "mimeType": symbol.get("contentType", "image/png"),
            "src": symbol.get("imageData", ""),
            "width": symbol.get("width"),
            "height": symbol.get("height"),
            "rotation": symbol.get("angle", 0),
            "opacity": 1,
            "offset": offset,
        }

    logger.warning(f"Unsupported ESRI symbol type: {symbol_type}")
    return None


def _unique_value_style(renderer: dict) -> GeometryStyle:
    fields = [f for f in (renderer.get("field1"), renderer.get("field2"), renderer.get("field3")) if f]
    delimiter = renderer.get("fieldDelimiter") or ","

    info = []
    for value_info in renderer.get("uniqueValueInfos") or []:
        settings = convert_symbol(value_info.get("symbol"))
        if settings is None:
            continue
        raw_value = str(value_info.get("value", ""))
        values = raw_value.split(delimiter) if len(fields) > 1 else [raw_value]
        info.append(StyleInfo(label=value_info.get("label") or raw_value, settings=settings, values=values))

    default_settings = convert_symbol(renderer.get("defaultSymbol"))
    if default_settings is not None:
        info.append(StyleInfo(label=renderer.get("defaultLabel") or "Default", settings=default_settings))

    return GeometryStyle(type="uniqueValue", info=info, fields=fields, has_default=default_settings is not None)


def _class_breaks_style(renderer: dict) -> GeometryStyle:
    field = renderer.get("field")
    previous_max = renderer.get("minValue")

    info = []
    for break_info in renderer.get("classBreakInfos") or []:
        settings = convert_symbol(break_info.get("symbol"))
        max_value = break_info.get("classMaxValue")
        min_value = break_info.get("classMinValue", previous_max)
        previous_max = max_value
        if settings is None:
            continue
        info.append(StyleInfo(label=break_info.get("label") or f"{min_value} - {max_value}", settings=settings,
                              values=[min_value, max_value]))

    default_settings = convert_symbol(renderer.get("defaultSymbol"))
    if default_settings is not None:
        info.append(StyleInfo(label=renderer.get("defaultLabel") or "Default", settings=default_settings))

    return GeometryStyle(type="classBreaks", info=info, fields=[field] if field else [],
                         has_default=default_settings is not None)


def parse_renderer(renderer: dict | None, geometry_type: str) -> StyleConfig | None:
    """
    Convert an ESRI ``drawingInfo.renderer`` into a style for one geometry type.

    Args:
        renderer: ESRI renderer (simple, uniqueValue or classBreaks)
        geometry_type: 'Point', 'LineString' or 'Polygon'

    Returns:
        StyleConfig, or None if the renderer is missing or unsupported
    """
    if not renderer:
        return None

    renderer_type = renderer.get("type")
    if renderer_type == "simple":
        settings = convert_symbol(renderer.get("symbol"))
        if settings is None:
            return None
        style = GeometryStyle(type="simple", info=[StyleInfo(label=renderer.get("label") or "", settings=settings)])
    elif renderer_type == "uniqueValue":
        style = _unique_value_style(renderer)
    elif renderer_type == "classBreaks":
        style = _class_breaks_style(renderer)
    else:
        logger.warning(f"Unsupported ESRI renderer type: {renderer_type}")
        return None

    return StyleConfig(styles={geometry_type: style})
