import os

import pytest
import pytest_asyncio
from fakecouch import FakeCouch
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from couchsync.api.database import Database
from couchsync.api.server import CouchServer
from couchsync.globals import CouchSyncGlobal
from couchsync.version import VERSION


# Only relevant when an OpenTelemetry collector is given on the command line.
# Every test then gets its own span, with the couchsync spans nested below it.
def pytest_configure(config: pytest.Config) -> None:
    otel_endpoint = config.getoption("--otel-endpoint")
    if otel_endpoint is None:
        return

    resource = Resource(attributes={SERVICE_NAME: "couchsync tests"})
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(
        OTLPSpanExporter(endpoint=f"http://{otel_endpoint}:4317", timeout=5)
    )
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)


@pytest.fixture(scope="function", autouse=True)
def span_generation(request: pytest.FixtureRequest):
    otel_endpoint = request.config.getoption("--otel-endpoint")
    if otel_endpoint is not None:
        tracer = trace.get_tracer("couchsync", VERSION)
        test_name = os.environ.get("PYTEST_CURRENT_TEST")
        if test_name is None:
            test_name = "unknown"
        else:
            test_name = test_name.split(":")[-1].split(" ")[0]

        with tracer.start_as_current_span(test_name) as current_span:
            yield current_span
    else:
        yield None


# HTTP traffic recording is global state, make sure no test leaks it
@pytest.fixture(autouse=True)
def reset_globals():
    yield
    CouchSyncGlobal.http_log_path = None
    CouchSyncGlobal.label = "couchsync"


@pytest_asyncio.fixture
async def fake_couch():
    fake = FakeCouch()
    await fake.start()
    yield fake
    await fake.close()


@pytest_asyncio.fixture
async def server(fake_couch: FakeCouch):
    server = CouchServer(fake_couch.url)
    yield server
    await server.close()


@pytest_asyncio.fixture
async def db(server: CouchServer) -> Database:
    db = server.database("db1")
    await db.create()
    return db


@pytest_asyncio.fixture
async def other_db(server: CouchServer) -> Database:
    db = server.database("db2")
    await db.create()
    return db


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("couchsync testing")
    group.addoption(
        "--otel-endpoint",
        metavar="HOST",
        help="The IP address or host name running OTEL collector",
    )
