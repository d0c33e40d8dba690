"""HTML pages rendered to the browser tab that completes the OAuth redirect."""

from __future__ import annotations

from html import escape

_STYLE = """
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            min-height: 100vh;
            margin: 0;
            background: #f5f6f8;
        }
        .container {
            background: white;
            padding: 40px;
            border-radius: 12px;
            box-shadow: 0 10px 40px rgba(0,0,0,0.12);
            text-align: center;
            max-width: 440px;
        }
        .icon { font-size: 64px; margin-bottom: 20px; }
        h1 { color: #333; margin-bottom: 10px; }
        p { color: #666; line-height: 1.6; }
        .email { color: #1a73e8; font-weight: bold; }
        .others { text-align: left; color: #666; }
        .error-message {
            color: #c5221f;
            background: #fce8e6;
            padding: 15px;
            border-radius: 8px;
            margin: 20px 0;
        }
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{escape(title)}</title>
    <style>{_STYLE}</style>
</head>
<body>
    <div class="container">
{body}
    </div>
</body>
</html>
"""


def success_page(identity: str, other_identities: list[str] | None = None) -> str:
    """Create the page shown after credentials were saved."""
    others = ""
    if other_identities:
        items = "\n".join(f"            <li>{escape(o)}</li>" for o in other_identities)
        others = f"""
        <p>Also authenticated on this machine:</p>
        <ul class="others">
{items}
        </ul>"""

    body = f"""        <div class="icon">&#10004;</div>
        <h1>Authentication Successful</h1>
        <p>You are signed in as:</p>
        <p class="email">{escape(identity)}</p>{others}
        <p>You can close this window and return to your application.</p>"""
    return _page("Authentication Successful", body)


def error_page(title: str, message: str) -> str:
    """Create an error page."""
    body = f"""        <div class="icon">&#10060;</div>
        <h1>{escape(title)}</h1>
        <div class="error-message">{escape(message)}</div>
        <p>Close this window and try again.</p>"""
    return _page(title, body)


__all__ = ["success_page", "error_page"]
