# Browser-facing status pages for the OAuth flow.
# Created: 2026-09-19
#
# Every interpolated value goes through html.escape.

from __future__ import annotations

import html

_PAGE = """<!DOCTYPE html>
<html lang="en"><head><meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title}</title>
<style>
body {{ font-family: system-ui; max-width: 600px; margin: 50px auto; padding: 20px;
  text-align: center; background: #f9fafb; color: #111827; }}
.card {{ background: white; border-radius: 8px; padding: 32px;
  box-shadow: 0 1px 3px rgba(0,0,0,0.1); }}
h1 {{ color: {accent}; font-size: 24px; }}
p {{ color: #4b5563; line-height: 1.6; }}
</style></head><body>
<div class="card"><h1>{heading}</h1><p>{message}</p>{extra}</div>
</body></html>"""


def _render(title: str, heading: str, message: str, accent: str, detail: str | None) -> str:
    extra = f"<p><small>{html.escape(detail)}</small></p>" if detail else ""
    return _PAGE.format(
        title=html.escape(title),
        heading=html.escape(heading),
        message=html.escape(message),
        accent=accent,
        extra=extra,
    )


def render_error_page(title: str, heading: str, message: str, detail: str | None = None) -> str:
    return _render(title, heading, message, "#dc2626", detail)


def render_success_page(title: str, heading: str, message: str, detail: str | None = None) -> str:
    return _render(title, heading, message, "#16a34a", detail)
