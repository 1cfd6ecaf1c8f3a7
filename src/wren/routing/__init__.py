"""Routing — maps a URL to a page id.

Route tables are compiled once, with the global context, and matched
with a fixed, documented precedence.
"""
