"""Tracer registry: one tracing session per (hostname, component) pair."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Tracer

from atlas_trace.config import Config

logger = logging.getLogger(__name__)

ACCESS_TOKEN_HEADER = "lightstep-access-token"
COMPONENT_NAME_KEY = "lightstep.component_name"
HOSTNAME_KEY = "lightstep.hostname"

ProviderFactory = Callable[[Config, str, str], TracerProvider]


def build_provider(config: Config, hostname: str, component: str) -> TracerProvider:
    """Create a provider exporting over OTLP/gRPC to the configured collector."""
    resource = Resource.create({
        "service.name": component,
        "host.name": hostname,
        COMPONENT_NAME_KEY: component,
        HOSTNAME_KEY: hostname,
    })
    exporter = OTLPSpanExporter(
        endpoint=f"{config.collector_host}:{config.collector_port}",
        insecure=config.plaintext,
        headers=((ACCESS_TOKEN_HEADER, config.access_token),),
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


@dataclass
class TracerHandle:
    hostname: str
    component: str
    provider: TracerProvider
    tracer: Tracer

    @property
    def key(self) -> str:
        return registry_key(self.hostname, self.component)

    def flush(self, timeout_millis: int = 30000) -> bool:
        return self.provider.force_flush(timeout_millis)


def registry_key(hostname: str, component: str) -> str:
    return f"{hostname}:{component}"


class TracerRegistry:
    """Lazily creates and caches tracer handles. All access goes through one lock."""

    def __init__(self, config: Config, provider_factory: ProviderFactory | None = None):
        self._config = config
        self._factory = provider_factory or build_provider
        self._handles: dict[str, TracerHandle] = {}
        self._lock = threading.Lock()

    def get_or_create(self, hostname: str, component: str) -> TracerHandle:
        key = registry_key(hostname, component)
        with self._lock:
            handle = self._handles.get(key)
            if handle is not None:
                return handle

            provider = self._factory(self._config, hostname, component)
            handle = TracerHandle(
                hostname=hostname,
                component=component,
                provider=provider,
                tracer=provider.get_tracer(component),
            )
            self._handles[key] = handle
            logger.info("Created tracer for %s", key)
            return handle

    def flush_all(self, timeout_millis: int = 30000) -> int:
        """Flush every handle; entries stay registered. Returns handles flushed."""
        flushed = 0
        with self._lock:
            for key, handle in self._handles.items():
                if handle.flush(timeout_millis):
                    flushed += 1
                else:
                    logger.warning("Flush timed out for %s", key)
        return flushed

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
