"""Shared pytest fixtures for the atlas-trace test suite."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from atlas_trace.config import Config
from atlas_trace.registry import TracerRegistry

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

RESPONSE_KV_LINE = (
    "Aug 22 10:51:02 atl2.shared.phx2 atlas: "
    "response,10:51:02.620,363776339/192.168.48.45/52401/414,00000BDF|"
    "result=0x0,statmsg=QUE,cache=1,uid=abc,sid=xyz,duration=0.250|"
    "evt=42,name=Seat"
)

RESPONSE_JSON_LINE = (
    "Aug 22 12:03:55 atl2.shared.phx2 atlas: "
    "response,12:03:55.460,42854398/192.168.49.220/2175/429,00000BDE|"
    '{"header":{"uid":"u-1","duration":"1.5"},"body":{"count":3,"items":[1,2]}}'
)

REQUEST_LINE = (
    "Aug 22 10:51:01 atl2.shared.phx2 atlas: "
    "request,10:51:01.100,363776339/192.168.48.45/52401/414,000000EA|"
    "mode=12,quenum=0x1"
)

ERROR_LINE = (
    "Aug 22 13:42:56 atl3.shared.phx2 atlas: "
    'error,13:42:56.960,0000016A|{"code":7,"text":"boom"}|code=9,where=pay'
)

OPUSE_LINE = (
    r"Aug 22 14:54:35 atl2.shared.phx2 atlas: "
    r"opuse,14:54:35.450,14:54:35\tCH6\\6\\CartOps\\0\\0\\10\\8\\406347\\406361\\0\\100\\9"
)

HOSTLOAD_LINE = "Aug 22 13:24:05 atl2.shared.phx2 atlas: hostload,13:24:05.630,ARZ,0,13:24:04,29"

UNPARSED_LINE = "Aug 22 15:18:32 atl2.shared.phx2 atlas: syncwait,15:18:32.100,42"


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def config() -> Config:
    return Config(access_token="token", collector_host="collector.local", collector_port=8184)


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture()
def provider_factory(span_exporter):
    """Provider factory that records spans in memory instead of exporting them."""
    created = []

    def factory(config, hostname, component):
        provider = TracerProvider(
            resource=Resource.create({"service.name": component, "host.name": hostname}),
        )
        provider.add_span_processor(SimpleSpanProcessor(span_exporter))
        created.append((hostname, component))
        return provider

    factory.created = created
    return factory


@pytest.fixture()
def registry(config, provider_factory) -> TracerRegistry:
    return TracerRegistry(config, provider_factory=provider_factory)
