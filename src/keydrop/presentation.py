"""One-time key page and the response headers every boundary reply carries."""

import html

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, private",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Robots-Tag": "noindex, nofollow",
    "Referrer-Policy": "no-referrer",
}

_KEY_PAGE = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<meta name="robots" content="noindex, nofollow">
<title>Your Key</title>
</head>
<body>
<h1>Your Key</h1>
<p style="font-family:monospace;font-size:18px;">{key}</p>
<p>Do not share this link. It is single-use.</p>
</body>
</html>
"""


def render_key_page(key_value: str) -> str:
    return _KEY_PAGE.format(key=html.escape(key_value or "", quote=True))
