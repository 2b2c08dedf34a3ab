"""
stations.py — On-Call Station Keys & Source-Label Mapping

Canonical station keys form a closed set. Every persisted ScheduleDay only
carries keys from STATION_KEYS.

Source spreadsheets label their columns in Hebrew (plus a few English
abbreviations). SOURCE_LABEL_TO_STATION maps those labels to canonical keys.
Several labels may point at the same key (spacing / punctuation variants and
consolidated services). Columns with no entry are informational only
(e.g. backup and extra-worker columns) and contribute no assignment.

WORKBOOK LAYOUT (template generated by exporter.build_template_workbook)
─────────────────────────────────────────────────────────────────────────
  Row 1:   title
  Row 2:   column labels
  Row 3+:  A = day-of-week label, B = date, C.. = occupant names
"""

import re
from typing import Dict, List, Optional

# ---------------------------------------------------------------------------
# Canonical stations (display order)
# ---------------------------------------------------------------------------
STATION_LABELS: Dict[str, str] = {
    "or_main":           "OR Main",
    "labor_delivery":    "Labor & Delivery",
    "icu":               "ICU",
    "or_gyne":           "OR Gynecology",
    "pacu":              "PACU",
    "on_call_manager":   "On-Call Manager",
    "senior_or":         "Senior OR",
    "senior_or_half":    "Senior OR (Half)",
    "ortho_shatzi":      "Ortho Shatzi",
    "ortho_trauma":      "Ortho Trauma",
    "ortho_joint":       "Ortho Joint",
    "surgery":           "Surgery",
    "urology":           "Urology",
    "spine":             "Spine",
    "vascular_thoracic": "Vascular/Thoracic",
    "pain_service":      "Pain Service",
    "spine_injections":  "Spine Injections",
    "weekly_day_off":    "Weekly Day Off",
}

STATION_KEYS: List[str] = list(STATION_LABELS)

# ---------------------------------------------------------------------------
# Source column layout of the on-call workbook (0-based column index → label)
# ---------------------------------------------------------------------------
DAY_OF_WEEK_COLUMN = 0
DATE_COLUMN = 1

SOURCE_COLUMNS: Dict[int, str] = {
    2:  "ת.חדר ניתוח",
    3:  "ת. חדר לידה",
    4:  "תורן טיפול נמרץ",
    5:  "ת.חדר ניתוח נשים",
    6:  "תורן PACU",
    7:  "מנהל תורן",
    8:  "תורן חנ בכיר",
    9:  "תורן חצי חנ בכיר",
    10: "כונן",
    11: "תורן שליש",
    12: "כיסוי טפנץ",
    13: "עובד נוסף",
    14: "אורתו שצי",
    15: "אורתו טראומה",
    16: "אורתו מפרק",
    17: "SUR",
    18: "Urol",
    19: 'עמ"ש',
    20: "כלי דם / חזה",
    21: "כאב",
    22: 'זריקות עמ"ש',
    23: "יום מנוחה שבועי",
}

DAY_OF_WEEK_HEADER = "יום"
DATE_HEADER = "תאריך"

# ---------------------------------------------------------------------------
# Source label → canonical station key
# ---------------------------------------------------------------------------
_SOURCE_LABEL_ENTRIES: Dict[str, str] = {
    # ── Operating rooms ──────────────────────────────────────────────────────
    "ת.חדר ניתוח":        "or_main",
    "ת. חדר ניתוח":       "or_main",
    "תורן חדר ניתוח":     "or_main",
    "ת.חדר ניתוח נשים":   "or_gyne",
    "ת. חדר ניתוח נשים":  "or_gyne",
    "תורן חנ בכיר":       "senior_or",
    "תורן חצי חנ בכיר":   "senior_or_half",

    # ── Obstetrics / ICU / recovery ──────────────────────────────────────────
    "ת. חדר לידה":        "labor_delivery",
    "ת.חדר לידה":         "labor_delivery",
    "תורן טיפול נמרץ":    "icu",
    "טיפול נמרץ":         "icu",
    "תורן PACU":          "pacu",
    "PACU":               "pacu",

    # ── Management ───────────────────────────────────────────────────────────
    "מנהל תורן":          "on_call_manager",

    # ── Orthopedics ──────────────────────────────────────────────────────────
    "אורתו שצי":          "ortho_shatzi",
    "אורתו טראומה":       "ortho_trauma",
    "אורתו מפרק":         "ortho_joint",

    # ── Specialty services ───────────────────────────────────────────────────
    "SUR":                "surgery",
    "כירורגיה":           "surgery",
    "Urol":               "urology",
    "אורולוגיה":          "urology",
    "כלי דם / חזה":       "vascular_thoracic",
    "כלי דם":             "vascular_thoracic",
    "חזה":                "vascular_thoracic",

    # ── Spine & pain ─────────────────────────────────────────────────────────
    'עמ"ש':               "spine",
    "כאב":                "pain_service",
    'זריקות עמ"ש':        "spine_injections",

    # ── Other ────────────────────────────────────────────────────────────────
    "יום מנוחה שבועי":    "weekly_day_off",
}

_GERSHAYIM = str.maketrans({"״": '"', "“": '"', "”": '"', "׳": "'"})


def normalize_label(raw: str) -> str:
    """Collapse whitespace, unify Hebrew quote marks and lowercase Latin letters."""
    s = str(raw or "").translate(_GERSHAYIM)
    s = re.sub(r"\s+", " ", s).strip()
    s = re.sub(r"\s*/\s*", " / ", s)
    return s.lower()


SOURCE_LABEL_TO_STATION: Dict[str, str] = {
    normalize_label(label): key for label, key in _SOURCE_LABEL_ENTRIES.items()
}
# canonical keys are accepted as their own labels (CSV exports use them)
SOURCE_LABEL_TO_STATION.update({key: key for key in STATION_KEYS})


def map_station(label: str) -> Optional[str]:
    """Return the canonical station key for a source column label, or None."""
    return SOURCE_LABEL_TO_STATION.get(normalize_label(label))


def map_station_values(station_raw: Dict[str, str]) -> Dict[str, str]:
    """
    Translate {source label: occupant text} into {station key: occupant text}.

    Unmapped labels and blank occupants are dropped. When two labels collapse
    onto the same key, the column further right wins.
    """
    out: Dict[str, str] = {}
    for label, value in station_raw.items():
        key = map_station(label)
        if key is None:
            continue
        text = str(value or "").strip()
        if not text:
            continue
        out[key] = text
    return out


def is_station_key(key: str) -> bool:
    return key in STATION_LABELS
