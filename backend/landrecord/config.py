"""Application configuration."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from backend root (before any os.getenv calls)
load_dotenv(BASE_DIR / ".env")
DATA_DIR = Path(os.getenv("LANDRECORD_DATA_DIR", str(BASE_DIR / "data")))
RECORDS_DIR = DATA_DIR / "records"

# Create directories
for d in [DATA_DIR, RECORDS_DIR]:
    d.mkdir(parents=True, exist_ok=True)

# Area units: conversion constants used across the chain engine
SQM_PER_ACRE = 4046.86
SQM_PER_GUNTHA = 101.17
GUNTHAS_PER_ACRE = 40

# Comparisons between summed areas tolerate float drift up to this many m²
AREA_TOLERANCE_SQM = float(os.getenv("AREA_TOLERANCE_SQM", "0.01"))

# Debug trace mode: set LANDRECORD_TRACE=1 to get detailed chain resolver logs
TRACE_ENABLED = os.getenv("LANDRECORD_TRACE", "").strip().lower() in ("1", "true", "yes")

# CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]

# Nondh types (mutation register entry kinds), labels as written in the register
NONDH_TYPE_LABELS = {
    "Kabjedaar": "Possession",
    "Ekatrikaran": "Consolidation",
    "Varsai": "Inheritance",
    "Hayati_ma_hakh_dakhal": "Lifetime right entry",
    "Hakkami": "Rights reduction",
    "Vechand": "Sale",
    "Durasti": "Correction",
    "Promulgation": "Promulgation",
    "Hukam": "Order",
    "Vehchani": "Partition",
    "Bojo": "Encumbrance",
    "Other": "Other",
}

# Status labels (Pramanik / Radd / Na manjoor)
STATUS_LABELS = {
    "valid": "Pramanik",
    "invalid": "Radd",
    "nullified": "Na manjoor",
}
