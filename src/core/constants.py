"""Core constants used across memstore modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_ID_NAME = "id"
DEFAULT_ID_TYPE = "number"
DEFAULT_SEQUENCE_START = 1
DEFAULT_LOG_LEVEL = "INFO"
STATE_IDS_KEY = "ids"
STATE_MODELS_KEY = "models"
STATE_FILE_INDENT = 2
STATE_TEMP_SUFFIX = ".tmp"
MODEL_REGISTRY_VERSION = 1
SUPPORTED_PROPERTY_TYPES = (
    "any",
    "array",
    "boolean",
    "date",
    "geopoint",
    "number",
    "object",
    "string",
)
LOGICAL_OPERATORS = ("and", "or")
LIST_OPERATORS = ("inq", "nin")
PATTERN_OPERATORS = ("like", "nlike", "ilike", "nilike")
RANGE_OPERATORS = ("gt", "gte", "lt", "lte")
NEAR_OPERATOR = "near"
SORT_ASCENDING = "ASC"
SORT_DESCENDING = "DESC"
DEFAULT_DISTANCE_UNIT = "miles"
DEG2RAD = 0.01745329252
RAD2DEG = 57.29577951308
EARTH_RADIUS = {
    "kilometers": 6370.99056,
    "meters": 6370990.56,
    "miles": 3958.75,
    "feet": 20902200.0,
    "radians": 1.0,
    "degrees": RAD2DEG,
}
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
DUPLICATE_ID_STATUS_CODE = 409
NOT_FOUND_STATUS_CODE = 404
