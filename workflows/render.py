"""Render a result payload into the plain text of its Google Doc.

Templates use ``string.Template`` placeholders over a flattened view of the
payload: nested keys are joined with underscores (``$ip_isp``,
``$memory_physical_total``), lists of strings are joined with newlines
(``$cpu_cpu``) and lists of objects (``$ping``, ``$trace``, ``$download``)
become readable blocks. Unknown placeholders render empty.
"""

from string import Template
from typing import Any, Dict

from resultsink.payload import ResultPayload


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _block(items: list) -> str:
    """Format a list of objects as blank-line separated "key: value" blocks."""
    blocks = []
    for item in items:
        if not isinstance(item, dict):
            blocks.append(_scalar(item))
            continue
        lines = []
        for key, value in item.items():
            if isinstance(value, list):
                lines.append(f"{key}:")
                lines.extend(f"  {_scalar(v)}" for v in value)
            else:
                lines.append(f"{key}: {_scalar(value)}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
    """Flatten a payload body into template placeholders."""
    flat: Dict[str, str] = {}
    for key, value in data.items():
        name = f"{prefix}_{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(flatten(value, name))
        elif isinstance(value, list):
            if any(isinstance(v, dict) for v in value):
                flat[name] = _block(value)
            else:
                flat[name] = "\n".join(_scalar(v) for v in value)
        else:
            flat[name] = _scalar(value)
    return flat


def render_template(template_ref: str, payload: ResultPayload) -> bytes:
    """Render the template file at template_ref for a payload.

    Raises:
        OSError: If the template can't be read
        ValueError: If the template contains a malformed placeholder
    """
    with open(template_ref, 'r', encoding='utf-8') as f:
        template = Template(f.read())

    values = _Blank(flatten(payload.body))
    values["start_unix"] = payload.key
    return template.substitute(values).encode('utf-8')
