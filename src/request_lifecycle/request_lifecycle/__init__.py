"""School request lifecycle package.

This package is organized by feature modules (guardian_links, payments, ...)
around a shared validation engine and a versioned request store, with a thin
Flask controller layer on top.
"""
