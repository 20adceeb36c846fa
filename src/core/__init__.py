"""Shared core layer.

This package holds constants, errors, configuration, logging, and the
typed models and model registry used by the query and store layers.
"""
