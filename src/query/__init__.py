"""Query evaluation layer.

This package matches, orders, geo-filters, projects, and pages
documents read from collection snapshots.
"""
