"""CSV and JSON export of completed session images."""

from __future__ import annotations

import csv
import io
import json
from datetime import date, datetime, timezone
from typing import Iterable

from imageprep.store import ProcessingImage

CSV_COLUMNS = [
    "filename",
    "lang",
    "alt",
    "keywords_used",
    "tags",
    "placement_hint",
    "width",
    "height",
    "bytes",
    "sha256",
]


def to_csv(images: Iterable[ProcessingImage], lang: str) -> str:
    """One fully quoted row per completed image, under a bare header row."""
    buf = io.StringIO()
    buf.write(",".join(CSV_COLUMNS) + "\n")

    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for img in images:
        result = img.result
        if result is None:
            continue
        writer.writerow(
            [
                img.filename,
                lang,
                result.alt,
                ",".join(result.keywords_used),
                ",".join(result.tags),
                result.placement_hint,
                img.metrics.width,
                img.metrics.height,
                img.metrics.bytes,
                img.sha256,
            ]
        )
    return buf.getvalue().rstrip("\n")


def csv_filename(day: date | None = None) -> str:
    day = day or datetime.now(timezone.utc).date()
    return f"image-analysis-{day.isoformat()}.csv"


def to_json(images: Iterable[ProcessingImage], lang: str) -> str:
    """Export in the shape of a batch response."""
    payload = {
        "generated_at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "lang": lang,
        "items": [
            {
                "filename": img.filename,
                "sha256": img.sha256,
                "metrics": img.metrics.model_dump(),
                "result": img.result.model_dump(),
            }
            for img in images
            if img.result is not None
        ],
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)
