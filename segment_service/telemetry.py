"""OpenTelemetry tracing setup for Segment Service."""


def telemetry_init(service_name, collector_endpoint=None, enable_tracing=True):
    """Initialize OpenTelemetry tracing."""
    from opentelemetry import trace

    if not enable_tracing:
        trace.set_tracer_provider(trace.NoOpTracerProvider())
        return

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

    provider = TracerProvider(resource=Resource.create(attributes={SERVICE_NAME: service_name}))
    if collector_endpoint:
        exporter = OTLPSpanExporter(endpoint=collector_endpoint, insecure=True)
    else:
        exporter = ConsoleSpanExporter()
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
