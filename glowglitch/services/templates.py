# glowglitch/services/templates.py
from __future__ import annotations

import html as html_lib
import re
from typing import Any, Mapping, Optional

VARIABLE_RE = re.compile(r"\{\{(\w+)\}\}")

DEFAULT_COLORS = {
    "primary": "#d4af37",
    "secondary": "#f4e4bc",
    "background": "#ffffff",
    "text": "#1a1a1a",
    "accent": "#b8941f",
}
DEFAULT_TYPOGRAPHY = {
    "headingFont": "Fraunces",
    "bodyFont": "Inter",
    "fontSize": "16px",
}
DEFAULT_LAYOUT = "single-column"
LAYOUTS = ("single-column", "two-column", "hero", "product-grid", "minimal")


def normalize_design(design: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Fill in the gold/ivory brand defaults for anything the caller left out."""
    design = design or {}
    colors = {**DEFAULT_COLORS, **{k: v for k, v in (design.get("colorScheme") or {}).items() if v}}
    typography = {**DEFAULT_TYPOGRAPHY, **{k: v for k, v in (design.get("typography") or {}).items() if v}}
    return {
        "layout": design.get("layout") or DEFAULT_LAYOUT,
        "colorScheme": colors,
        "typography": typography,
    }


def infer_variable_type(name: str) -> str:
    n = name.lower()
    if any(k in n for k in ("image", "photo", "picture")):
        return "image"
    if any(k in n for k in ("url", "link", "href")):
        return "url"
    if any(k in n for k in ("price", "amount", "total", "count")):
        return "number"
    if any(k in n for k in ("enable", "show", "hide")):
        return "boolean"
    return "text"


def extract_variables(html: str) -> list[dict[str, Any]]:
    seen: dict[str, dict[str, Any]] = {}
    for match in VARIABLE_RE.finditer(html or ""):
        name = match.group(1)
        if name not in seen:
            seen[name] = {
                "name": name,
                "type": infer_variable_type(name),
                "description": f"Dynamic {name} content",
                "required": True,
            }
    return list(seen.values())


def default_css(design: Optional[Mapping[str, Any]]) -> str:
    d = normalize_design(design)
    c = d["colorScheme"]
    t = d["typography"]
    return f"""/* Email Template Styles */
.email-container {{
  max-width: 600px;
  margin: 0 auto;
  font-family: {t['bodyFont']}, -apple-system, BlinkMacSystemFont, sans-serif;
  font-size: {t['fontSize']};
  line-height: 1.6;
  color: {c['text']};
  background-color: {c['background']};
}}
.email-header {{
  text-align: center;
  padding: 40px 20px;
  background: linear-gradient(135deg, {c['primary']} 0%, {c['secondary']} 100%);
  border-radius: 12px 12px 0 0;
}}
.email-content {{
  padding: 40px 30px;
  background: {c['background']};
}}
.email-footer {{
  padding: 30px;
  text-align: center;
  font-size: 14px;
  color: #666;
  border-top: 1px solid #eee;
}}
h1, h2, h3 {{
  font-family: {t['headingFont']}, serif;
  color: {c['text']};
  margin-bottom: 20px;
}}
h1 {{ font-size: 28px; }}
h2 {{ font-size: 24px; }}
h3 {{ font-size: 20px; }}
.button {{
  display: inline-block;
  background: {c['primary']};
  color: white;
  text-decoration: none;
  padding: 16px 32px;
  border-radius: 8px;
  font-weight: 600;
  margin: 20px 0;
}}
.button:hover {{
  background: {c['accent']};
}}
.highlight {{
  background: {c['secondary']};
  border: 1px solid {c['primary']};
  border-radius: 6px;
  padding: 16px;
  margin: 20px 0;
}}
@media (max-width: 600px) {{
  .email-container {{ width: 100% !important; }}
  .email-content {{ padding: 20px !important; }}
}}"""


def render(html: str, data: Mapping[str, Any], *, escape: bool = True) -> str:
    """Substitute {{name}} placeholders. Unknown placeholders are left as-is."""

    def _sub(match: re.Match) -> str:
        name = match.group(1)
        if name not in data or data[name] is None:
            return match.group(0)
        value = str(data[name])
        return html_lib.escape(value) if escape else value

    return VARIABLE_RE.sub(_sub, html or "")


def missing_required(variables: list[Mapping[str, Any]], data: Mapping[str, Any]) -> list[str]:
    return [
        v["name"]
        for v in variables
        if v.get("required") and data.get(v["name"]) in (None, "") and v.get("defaultValue") in (None, "")
    ]


def with_defaults(variables: list[Mapping[str, Any]], data: Mapping[str, Any]) -> dict[str, Any]:
    merged = {v["name"]: v["defaultValue"] for v in variables if v.get("defaultValue") not in (None, "")}
    merged.update({k: v for k, v in data.items() if v is not None})
    return merged
