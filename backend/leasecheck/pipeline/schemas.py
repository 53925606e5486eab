"""JSON Schema definitions for Ollama structured outputs.

Used via Ollama's `format: { JSON Schema }` parameter so the model returns
runsheet rows with exact field names.
"""

# ═══════════════════════════════════════════════════
# RUNSHEET EXTRACTION
# ═══════════════════════════════════════════════════

_RUNSHEET_ROW_SCHEMA = {
    "type": "object",
    "properties": {
        "book_and_page": {"type": "string"},
        "instrument_number": {"type": "string"},
        "instrument_type": {
            "type": "string",
            "description": "As written, e.g. 'Patent', 'WD', 'QCD', 'O&G Lease', 'Release'",
        },
        "dated": {"type": "string", "description": "Date as written, or empty"},
        "recorded": {"type": "string", "description": "Date as written, or empty"},
        "grantors": {
            "type": "string",
            "description": "One party per line; keep fractions such as '(1/2)' beside the name",
        },
        "grantees": {
            "type": "string",
            "description": "One party per line; keep fractions such as '(1/2)' beside the name",
        },
        "legal_description": {"type": "string"},
        "comments": {"type": "string"},
    },
    "required": [
        "instrument_type", "dated", "recorded", "grantors", "grantees", "legal_description",
    ],
}

EXTRACT_RUNSHEET_SCHEMA = {
    "type": "object",
    "properties": {
        "prospect": {
            "type": "string",
            "description": "Township-range-section legal description of the tract, if stated",
        },
        "rows": {
            "type": "array",
            "items": _RUNSHEET_ROW_SCHEMA,
        },
    },
    "required": ["rows"],
}
