import html
import json

from shared.config.settings import FRONTEND_URL


def payment_page_url(order_id: str) -> str:
    return f"{FRONTEND_URL}/#/payment/{order_id}"


def render_redirect_page(url: str) -> str:
    """Self-contained page that sends the browser straight to ``url``."""
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta http-equiv="refresh" content="0;url={html.escape(url, quote=True)}">
    <title>Redirecting to payment...</title>
</head>
<body>
    <p>Redirecting to the payment page, please wait...</p>
    <script>window.location.href = {json.dumps(url)};</script>
</body>
</html>"""
