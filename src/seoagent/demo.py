"""Bundled sample page with deliberately poor on-page SEO."""

from __future__ import annotations

from .audit import AuditResult, audit_html
from .utils import normalize_url

DEMO_SOURCE = "demo-ecommerce.com"

DEMO_HTML = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <!-- No title tag! -->
</head>
<body>
  <h3>Welcome to Our Amazing Online Store</h3>
  <h5>Shop the Best Products Available Online Today</h5>

  <p>We sell great products. Buy now. Best deals available.</p>

  <img src="images/product1.jpg">
  <img src="images/product2.jpg">
  <img src="images/hero-banner.jpg">

  <a href="/about">About Us</a>
  <a href="/contact">Contact</a>
  <a href="/products">Products</a>
</body>
</html>"""


def audit_demo() -> AuditResult:
    return audit_html(normalize_url(DEMO_SOURCE), DEMO_HTML)
