"""
Samples router: push metric samples into the engine.

Endpoints:
    POST /samples   Evaluate a batch of samples against every matching rule
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from alertspine.api.deps import Engine
from alertspine.api.schemas import SampleBatch
from alertspine.models import MetricSample

router = APIRouter(prefix="/samples")


@router.post("", status_code=202)
def ingest_samples(body: SampleBatch, engine: Engine) -> dict[str, Any]:
    now = engine.clock.now()
    samples = [
        MetricSample(
            server_id=sample.server_id,
            metric=sample.metric,
            value=sample.value,
            timestamp=sample.timestamp or now,
        )
        for sample in body.samples
    ]
    decisions = engine.ingest_many(samples)
    return {
        "accepted": len(samples),
        "decisions": [decision.to_dict() for decision in decisions],
    }
