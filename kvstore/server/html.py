"""Self-contained HTML view of a snapshot.

The same page serves as the static export (no endpoints) and as the live
viewer, which polls ``/data`` and posts edits to ``/api``.
"""

from __future__ import annotations

import html
import json
import re
from datetime import datetime

from kvstore.core.models import Record, utcnow

_MARKER = re.compile(
    r"__(?:TITLE|GENERATED|POLL_ENDPOINT|API_ENDPOINT|RECORDS|VERSION)__"
)

PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>__TITLE__</title>
  <style>
    :root { --bg: #f4f1eb; --panel: #fffdf8; --ink: #1f2a2e; --muted: #66757d;
            --line: #d8d0c6; --accent: #bf4f2d; --chip: #e8f2ef; --chip-ink: #21564a; }
    * { box-sizing: border-box; }
    body { margin: 0; font-family: "Avenir Next", "Segoe UI", sans-serif;
           color: var(--ink); background: var(--bg); }
    .wrap { max-width: 1100px; margin: 2rem auto; padding: 0 1rem 2rem; }
    .card { background: var(--panel); border: 1px solid var(--line);
            border-radius: 14px; padding: 1rem; }
    h1 { margin: 0 0 0.8rem; font-size: 1.5rem; }
    input { width: 100%; border: 1px solid var(--line); border-radius: 8px;
            padding: 0.6rem 0.7rem; font-size: 0.95rem; }
    table { width: 100%; border-collapse: collapse; margin-top: 1rem; }
    th, td { text-align: left; padding: 0.5rem; border-bottom: 1px solid var(--line);
             vertical-align: top; }
    td.value { white-space: pre-wrap; word-break: break-word; }
    .chip { display: inline-block; background: var(--chip); color: var(--chip-ink);
            border-radius: 999px; padding: 0.1rem 0.55rem; margin: 0 0.2rem 0.2rem 0;
            font-size: 0.8rem; }
    .muted { color: var(--muted); font-size: 0.85rem; }
    .editor { display: none; grid-template-columns: 1fr 2fr 1fr 8rem auto; gap: 0.5rem;
              margin-top: 0.8rem; }
    .live .editor { display: grid; }
    button { border: 0; border-radius: 8px; background: var(--accent); color: #fff;
             padding: 0.5rem 0.9rem; cursor: pointer; }
    #status { margin-top: 0.5rem; }
  </style>
</head>
<body>
  <div class="wrap">
    <div class="card">
      <h1>__TITLE__</h1>
      <input id="filter" placeholder="Filter by key, value or tag" autocomplete="off" />
      <div class="editor">
        <input id="record-key" placeholder="key" />
        <input id="record-value" placeholder="value" />
        <input id="record-tags" placeholder="tags (comma separated)" />
        <input id="record-ttl" placeholder="TTL minutes (blank = permanent)" />
        <button id="record-save" type="button">Save</button>
      </div>
      <div id="status" class="muted">Generated __GENERATED__</div>
      <table>
        <thead><tr><th>Key</th><th>Value</th><th>Tags</th><th>Expires</th></tr></thead>
        <tbody id="rows"></tbody>
      </table>
    </div>
  </div>
  <script>
    const POLL_ENDPOINT = __POLL_ENDPOINT__;
    const API_ENDPOINT = __API_ENDPOINT__;
    let records = __RECORDS__;
    let version = __VERSION__;

    function escapeHtml(text) {
      const div = document.createElement("div");
      div.textContent = text;
      return div.innerHTML;
    }

    function render() {
      const query = document.getElementById("filter").value.trim().toLowerCase();
      const rows = records.filter((r) => !query
        || r.key.toLowerCase().includes(query)
        || r.value.toLowerCase().includes(query)
        || r.tags.some((t) => t.includes(query)));
      document.getElementById("rows").innerHTML = rows.map((r) => `
        <tr>
          <td>${escapeHtml(r.key)}</td>
          <td class="value">${escapeHtml(r.value)}</td>
          <td>${r.tags.map((t) => `<span class="chip">${escapeHtml(t)}</span>`).join("")}</td>
          <td class="muted">${r.expires_at ? escapeHtml(r.expires_at) : "never"}</td>
        </tr>`).join("");
    }

    async function poll() {
      try {
        const response = await fetch(`${POLL_ENDPOINT}?since=${version}`);
        const data = await response.json();
        if (data.changed) {
          records = data.records;
          version = data.version;
          render();
        }
      } catch (err) {
        document.getElementById("status").textContent = `Polling failed: ${err}`;
      }
    }

    function parseTtl(raw) {
      const trimmed = raw.trim();
      if (!trimmed) return null;
      const minutes = Number.parseInt(trimmed, 10);
      if (!Number.isFinite(minutes) || minutes <= 0) {
        throw new Error("TTL must be a positive integer number of minutes.");
      }
      return minutes;
    }

    async function save() {
      const status = document.getElementById("status");
      try {
        const tags = document.getElementById("record-tags").value
          .split(",").map((t) => t.trim()).filter(Boolean);
        const response = await fetch(`${API_ENDPOINT}/records/upsert`, {
          method: "POST",
          headers: { "Content-Type": "application/json" },
          body: JSON.stringify({
            key: document.getElementById("record-key").value,
            value: document.getElementById("record-value").value,
            tags: tags,
            ttl_minutes: parseTtl(document.getElementById("record-ttl").value),
          }),
        });
        status.textContent = await response.text();
        await poll();
      } catch (err) {
        status.textContent = err.message;
      }
    }

    document.getElementById("filter").addEventListener("input", render);
    render();
    if (POLL_ENDPOINT) {
      document.body.classList.add("live");
      document.getElementById("record-save").addEventListener("click", save);
      setInterval(poll, 2000);
    }
  </script>
</body>
</html>
"""


def record_payload(record: Record) -> dict:
    """JSON shape of a record in the page and the polling endpoint."""
    return {"key": record.key, **record.to_dict()}


def _script_json(value: object) -> str:
    return json.dumps(value, ensure_ascii=False).replace("</", "<\\/")


def render_page(
    records: list[Record],
    version: int = 0,
    title: str = "kvstore",
    poll_endpoint: str = "",
    api_endpoint: str = "",
    generated_at: datetime | None = None,
) -> str:
    """Render the page with ``records`` embedded as its initial data."""
    generated_at = generated_at or utcnow()
    replacements = {
        "__TITLE__": html.escape(title),
        "__GENERATED__": html.escape(generated_at.strftime("%Y-%m-%d %H:%M UTC")),
        "__POLL_ENDPOINT__": _script_json(poll_endpoint),
        "__API_ENDPOINT__": _script_json(api_endpoint),
        "__RECORDS__": _script_json([record_payload(r) for r in records]),
        "__VERSION__": str(int(version)),
    }
    return _MARKER.sub(lambda m: replacements[m.group(0)], PAGE_TEMPLATE)
