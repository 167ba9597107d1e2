"""HTML pages shown to the buyer after the processor-hosted checkout."""

from __future__ import annotations

from html import escape

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
<style>
body {{ font-family: system-ui, sans-serif; background: #f6f7f9; color: #1f2933; }}
main {{ max-width: 32rem; margin: 15vh auto; padding: 2rem; background: #fff;
        border-radius: 8px; box-shadow: 0 1px 4px rgba(0, 0, 0, .08); text-align: center; }}
h1 {{ color: {accent}; font-size: 1.5rem; }}
code {{ background: #eef1f4; padding: .1rem .3rem; border-radius: 4px; }}
</style>
</head>
<body>
<main>
<h1>{heading}</h1>
<p>{message}</p>
{order_line}
</main>
</body>
</html>
"""


def _render(*, title: str, heading: str, message: str, accent: str, order_id: str | None) -> str:
    order_line = ""
    if order_id:
        order_line = f"<p>Order reference: <code>{escape(order_id)}</code></p>"
    return _PAGE.format(
        title=escape(title),
        heading=escape(heading),
        message=escape(message),
        accent=accent,
        order_line=order_line,
    )


def render_success_page(order_id: str | None) -> str:
    return _render(
        title="Payment successful",
        heading="Payment successful",
        message="Thank you. Your payment has been received and is being confirmed.",
        accent="#1f7a4d",
        order_id=order_id,
    )


def render_failure_page(order_id: str | None) -> str:
    return _render(
        title="Payment failed",
        heading="Payment was not completed",
        message="Your payment could not be processed. Please try again.",
        accent="#b42318",
        order_id=order_id,
    )
