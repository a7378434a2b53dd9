"""Prometheus exporter helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


photo_normalized_total = Counter(
    "photo_normalized_total",
    "Total number of photos successfully normalised.",
)

photo_budget_exceeded_total = Counter(
    "photo_budget_exceeded_total",
    "Photos accepted above the byte budget after reaching the quality floor.",
)

photo_failures_total = Counter(
    "photo_failures_total",
    "Photos dropped from a batch, labelled by failure reason.",
    ["reason"],
)

photo_encode_attempts = Histogram(
    "photo_encode_attempts",
    "JPEG encode attempts needed per photo.",
    buckets=(1, 2, 3, 4, 5, 6, 8, 10, 15),
)
