"""Redirect service: /q/{slug} scan redirects and the manage page."""
