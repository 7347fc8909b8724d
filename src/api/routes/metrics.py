"""Metric ingest endpoint.

Services push health samples here; the rule evaluation loop reads them
back through the engine's metric source.
"""

import logging

from fastapi import APIRouter, Depends

from src.alerting.engine import AlertingEngine
from src.alerting.store import MetricSink
from src.api.dependencies import get_engine
from src.api.models import MetricSampleRequest
from src.api_errors.exceptions import ServiceUnavailableError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/metrics", tags=["Metrics"])


def _sink(engine: AlertingEngine) -> MetricSink:
    if not isinstance(engine.metric_source, MetricSink):
        raise ServiceUnavailableError("Metric source does not accept pushed samples")
    return engine.metric_source


@router.post("", status_code=201)
async def ingest_sample(body: MetricSampleRequest, engine: AlertingEngine = Depends(get_engine)):
    sink = _sink(engine)
    sample = body.to_domain(engine.clock.now())
    await sink.ingest(sample)
    logger.debug(
        "Ingested %s=%s for %s", sample.metric_type, sample.metric_value, sample.service_name
    )
    return sample.to_dict()


@router.post("/batch", status_code=201)
async def ingest_batch(
    body: list[MetricSampleRequest],
    engine: AlertingEngine = Depends(get_engine),
):
    sink = _sink(engine)
    now = engine.clock.now()
    samples = [item.to_domain(now) for item in body]
    for sample in samples:
        await sink.ingest(sample)
    return {"ingested": len(samples)}
