import json
from typing import Any, Dict, List, Optional, Sequence, Union
from engine_cli.core.config import settings

MAX_CELL_WIDTH = 40


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:.2f}"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    text = str(value)
    if len(text) > MAX_CELL_WIDTH:
        text = text[:MAX_CELL_WIDTH - 3] + "..."
    return text


class Formatter:
    """
    Prints API results as JSON or as a plain-text table.
    """

    @staticmethod
    def print(data: Union[List[Dict], Dict], title: str = "Results", columns: Optional[Sequence[str]] = None):
        if settings.output_format == "json":
            print(json.dumps(data, indent=2))
        else:
            print(Formatter.render_table(data, title, columns))

    @staticmethod
    def render_table(data: Union[List[Dict], Dict, None], title: str, columns: Optional[Sequence[str]] = None) -> str:
        if not data:
            return "No results found."
        rows = [data] if isinstance(data, dict) else list(data)

        headers = list(columns) if columns else list(rows[0].keys())
        cells = [[_cell(row.get(h)) for h in headers] for row in rows]
        widths = [max([len(h)] + [len(r[i]) for r in cells]) for i, h in enumerate(headers)]

        separator = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
        lines = [f"\n{title} ({len(rows)} items)", separator]
        lines.append("|" + "|".join(f" {h.upper().ljust(w)} " for h, w in zip(headers, widths)) + "|")
        lines.append(separator)
        for row in cells:
            lines.append("|" + "|".join(f" {c.ljust(w)} " for c, w in zip(row, widths)) + "|")
        lines.append(separator)
        return "\n".join(lines)


formatter = Formatter()
