from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from jinja2 import Template

from .table import SortableResultTable

logger = logging.getLogger(__name__)


_REPORT_TEMPLATE = Template(
    """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>kboview {{ mode }} report</title>
  <style>
    body { font-family: Arial, Helvetica, sans-serif; margin: 24px; }
    code, pre { background: #f6f8fa; padding: 2px 4px; border-radius: 4px; }
    pre { padding: 12px; overflow-x: auto; }
    h1, h2, h3 { margin-top: 1.2em; }
    table { border-collapse: collapse; margin-top: 0.6em; }
    th, td { border: 1px solid #ddd; padding: 8px; }
    th { background: #f2f2f2; text-align: left; }
    th.sorted { background: #dde8f6; }
    .grid { display: grid; grid-template-columns: 1fr 1fr; gap: 16px; }
    .card { border: 1px solid #ddd; border-radius: 8px; padding: 12px; }
    .small { color: #666; font-size: 0.9em; }
    .notice { border-left: 4px solid #d0a000; padding: 8px 12px; background: #fff8e0; }
    img { max-width: 100%; height: auto; border: 1px solid #eee; border-radius: 6px; }
  </style>
</head>
<body>

<h1>kboview {{ mode }} report</h1>
<p class="small">Generated: {{ generated_at }}</p>

<h2>Run summary</h2>
<div class="grid">
  <div class="card">
    <h3>Inputs</h3>
    <table>
      <tr><th>Reference</th><td>{% for r in reference %}<code>{{ r }}</code><br>{% endfor %}</td></tr>
      <tr><th>Queries</th><td>{% for q in queries %}<code>{{ q }}</code><br>{% endfor %}</td></tr>
    </table>
  </div>
  <div class="card">
    <h3>Options</h3>
    <table>
      {% for key, value in options.items() %}
      <tr><th>{{ key }}</th><td>{{ value }}</td></tr>
      {% endfor %}
    </table>
  </div>
</div>

{% if failures %}
<h2>Unreadable inputs</h2>
<ul>
  {% for f in failures %}
  <li>{{ f }}</li>
  {% endfor %}
</ul>
{% endif %}

<h2>Results</h2>
{% if message %}
<p class="notice">{{ message }}</p>
{% endif %}
{% if headers %}
<p class="small">{{ rows|length }} row(s){% if sort_field %}, sorted by <code>{{ sort_field }}</code> ({{ direction }}){% endif %}.</p>
<table>
  <tr>{% for h in headers %}<th{% if h == sort_header %} class="sorted"{% endif %}>{{ h }}</th>{% endfor %}</tr>
  {% for row in rows %}
  <tr>{% for h in headers %}<td>{{ row[h] }}</td>{% endfor %}</tr>
  {% endfor %}
</table>
{% endif %}
{% if consensus %}
<table>
  <tr><th>Query</th><th>Consensus length</th><th>Unresolved (-)</th></tr>
  {% for c in consensus %}
  <tr><td><code>{{ c.label }}</code></td><td>{{ c.length }}</td><td>{{ c.gaps }}</td></tr>
  {% endfor %}
</table>
{% endif %}

{% if plots %}
<h2>Plots</h2>
<div class="grid">
  {% for title, src in plots.items() %}
  <div class="card">
    <h3>{{ title }}</h3>
    <img src="{{ src }}" alt="{{ title }}">
  </div>
  {% endfor %}
</div>
{% endif %}

<h2>Outputs</h2>
<ul>
  {% for o in outputs %}
  <li><code>{{ o }}</code></li>
  {% endfor %}
  <li><code>summary.json</code> (machine-readable summary)</li>
</ul>

<hr>
<p class="small">kboview {{ version }}</p>
</body>
</html>"""
)


def render_report(
    *,
    outdir: str | Path,
    version: str,
    mode: str,
    reference: Sequence[str],
    queries: Sequence[str],
    options: Dict[str, Any],
    table: Optional[SortableResultTable] = None,
    consensus: Optional[List[Dict[str, Any]]] = None,
    message: Optional[str] = None,
    failures: Sequence[str] = (),
    plots: Optional[Dict[str, str]] = None,
    outputs: Sequence[str] = (),
) -> Path:
    """Write ``report.html`` into ``outdir`` and return its path.

    The results table is rendered in the table's current sort order with its
    filters applied.
    """
    outdir = Path(outdir)
    outdir.mkdir(parents=True, exist_ok=True)

    headers: List[str] = []
    rows: List[Dict[str, str]] = []
    sort_header = None
    if table is not None:
        headers = [f.header for f in table.fields]
        rows = table.rows_as_dicts()
        if table.sort_field is not None:
            sort_header = table.field(table.sort_field).header

    html = _REPORT_TEMPLATE.render(
        generated_at=_dt.datetime.now().isoformat(timespec="seconds"),
        version=version,
        mode=mode,
        reference=list(reference),
        queries=list(queries),
        options=options,
        failures=list(failures),
        message=message,
        headers=headers,
        rows=rows,
        sort_field=table.sort_field if table is not None else None,
        sort_header=sort_header,
        direction=table.direction.value if table is not None else None,
        consensus=consensus or [],
        plots=plots or {},
        outputs=list(outputs),
    )

    out_path = outdir / "report.html"
    out_path.write_text(html, encoding="utf-8")
    logger.info("Report written: %s", out_path)
    return out_path
