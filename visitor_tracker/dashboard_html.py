from __future__ import annotations

from html import escape

from visitor_tracker.models import BlacklistEntry


def _trend_html(trend: list[dict]) -> str:
    if not trend:
        return '<span class="lbl">no visits in the last 7 days</span>'
    max_count = max((p["visitor_count"] for p in trend), default=1)
    rows = []
    for p in trend:
        bar_w = max(2, int(p["visitor_count"] / max_count * 100))
        rows.append(
            f'<tr>'
            f'<td class="lbl">{escape(p["visit_date"])}</td>'
            f'<td><div class="bar" style="width:{bar_w}px"></div></td>'
            f'<td class="num">{p["visitor_count"]}</td>'
            f'</tr>'
        )
    return f'<table class="info">{"".join(rows)}</table>'


def _top_ip_html(top_ips: list[dict], total: int) -> str:
    if not top_ips:
        return '<span class="lbl">no data yet</span>'
    rows = []
    for t in top_ips:
        pct = f"{t['visit_count'] / total * 100:.1f}%" if total else "—"
        rows.append(
            f'<tr>'
            f'<td class="lbl">{escape(t["visitor_ip"])}</td>'
            f'<td>{escape(t["region"])}</td>'
            f'<td class="num">{t["visit_count"]}</td>'
            f'<td class="pct">{pct}</td>'
            f'</tr>'
        )
    return f'<table class="info">{"".join(rows)}</table>'


def _visits_html(visits: list[dict]) -> str:
    if not visits:
        return '<span class="lbl">no visits recorded</span>'
    rows = []
    for v in visits:
        rows.append(
            f'<tr>'
            f'<td class="ts" style="text-align:left">{escape(v["visit_time"])}</td>'
            f'<td class="lbl">{escape(v["visitor_ip"])}</td>'
            f'<td>{escape(v["region"])}</td>'
            f'<td class="ua">{escape(v["user_agent"][:80])}</td>'
            f'</tr>'
        )
    return f'<table class="info">{"".join(rows)}</table>'


def _blacklist_html(entries: list[BlacklistEntry]) -> str:
    if not entries:
        return '<span class="lbl">blacklist is empty</span>'
    rows = []
    for e in entries:
        rows.append(
            f'<tr>'
            f'<td class="num">#{e.id}</td>'
            f'<td class="err">{escape(e.blocked_ip)}</td>'
            f'<td>{escape(e.remark)}</td>'
            f'<td class="ts">{escape(e.add_time)}</td>'
            f'</tr>'
        )
    return f'<table class="info">{"".join(rows)}</table>'


_PAGE = """\
<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<meta http-equiv="refresh" content="30">
<title>visitor-tracker</title>
<style>
*{{box-sizing:border-box;margin:0;padding:0}}
body{{background:#0d1117;color:#c9d1d9;font:13px/1.6 "Courier New",monospace;padding:1.5rem}}
h1{{color:#58a6ff;font-size:1.1rem;margin-bottom:1rem;letter-spacing:.05em}}
h2{{color:#58a6ff;font-size:.78rem;text-transform:uppercase;letter-spacing:.12em;
    margin-bottom:.6rem;padding-bottom:.4rem;border-bottom:1px solid #21262d}}
.topbar{{margin-bottom:1.2rem;font-size:.78rem;color:#8b949e}}
.grid{{display:grid;grid-template-columns:1fr 1fr;gap:1rem;margin-bottom:1rem}}
.card{{background:#161b22;border:1px solid #21262d;border-radius:6px;padding:1rem}}
.wide{{margin-bottom:1rem}}
table.info{{width:100%;border-collapse:collapse}}
table.info td{{padding:.15rem .3rem;vertical-align:middle}}
.lbl{{color:#8b949e;min-width:5rem}}
.num{{text-align:right;min-width:3.5rem}}
.pct{{text-align:right;color:#8b949e;min-width:3rem}}
.ts{{color:#8b949e;font-size:.75rem;text-align:right;white-space:nowrap}}
.ua{{color:#8b949e;font-size:.75rem}}
.err{{color:#f85149}}
.bar{{background:#1f6feb;height:.55em;border-radius:2px;display:inline-block;min-width:2px}}
.big{{font-size:1.4rem;color:#c9d1d9;font-weight:bold}}
@media(max-width:600px){{.grid{{grid-template-columns:1fr}}}}
</style>
</head>
<body>
<h1>&#128065; visitor-tracker v{version}</h1>
<div class="topbar">
  <span>updated: {generated} &middot; uptime {uptime}</span>
</div>

<div class="grid">
  <div class="card">
    <h2>Visitors</h2>
    <table class="info">
      <tr><td class="lbl">total</td><td><span class="big">{total}</span></td></tr>
      <tr><td class="lbl">today</td><td><span class="big">{today}</span></td></tr>
    </table>
  </div>
  <div class="card">
    <h2>Last 7 days</h2>
    {trend_html}
  </div>
</div>

<div class="grid">
  <div class="card">
    <h2>Top IPs</h2>
    {top_ip_html}
  </div>
  <div class="card">
    <h2>Blacklist</h2>
    {blacklist_html}
  </div>
</div>

<div class="card wide">
  <h2>Recent visits</h2>
  {visits_html}
</div>

</body>
</html>
"""


def render_dashboard_page(
    *,
    generated: str,
    uptime: str,
    stats: dict,
    blacklist: list[BlacklistEntry],
    version: str,
) -> str:
    """Render the read-only dashboard from a get_stats() report."""
    total = stats["totalVisitors"]
    return _PAGE.format(
        version=escape(version),
        generated=generated,
        uptime=uptime,
        total=total,
        today=stats["todayVisitors"],
        trend_html=_trend_html(stats["sevenDaysTrend"]),
        top_ip_html=_top_ip_html(stats["topIpList"], total),
        blacklist_html=_blacklist_html(blacklist),
        visits_html=_visits_html(stats["visitorList"]),
    )
