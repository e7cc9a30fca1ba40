import pytest
import os

# In-memory database unless the environment points elsewhere (e.g. Docker)
os.environ.setdefault('DATABASE_URL', 'sqlite://')

from cotizador import create_app
from cotizador.client.api_client import CotizadorApiClient
from cotizador.client.scheduler import Handle, Scheduler
from cotizador.database import Base, create_schema, get_session
from cotizador.models import Customer, Product, WithholdingRule
from cotizador.principal import Principal
from cotizador.services import quote_service

API_BASE = 'http://testserver/api'

SAMPLE_ITEMS = [
    {'code': 'TOR-001', 'description': 'Tornillo 1/4', 'quantity': 10, 'unit_price': 100,
     'discount_pct': 0, 'tax_rate': 21},
    {'code': 'TUE-002', 'description': 'Tuerca 1/4', 'quantity': 5, 'unit_price': 40,
     'discount_pct': 10, 'tax_rate': 21},
]


class ManualScheduler(Scheduler):
    """Scheduler driven by advance() instead of wall-clock time."""

    def __init__(self):
        super().__init__()
        self.now = 0.0
        self._timers = []
        self._seq = 0

    def call_later(self, delay, fn):
        return self._add(delay, fn, None)

    def call_every(self, interval, fn):
        return self._add(interval, fn, interval)

    def _add(self, delay, fn, interval):
        handle = Handle()
        self._seq += 1
        self._timers.append([self.now + delay, self._seq, handle, fn, interval])
        return handle

    @property
    def pending(self):
        return len([t for t in self._timers if not t[2].cancelled])

    def advance(self, seconds):
        """Run every callback due within ``seconds``, in due-time order."""
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if not t[2].cancelled and t[0] <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t[0], t[1]))
            self._timers.remove(timer)
            self.now = timer[0]
            self._run(timer[2], timer[3])
            if timer[4] is not None and not timer[2].cancelled:
                self._seq += 1
                self._timers.append([timer[0] + timer[4], self._seq, timer[2], timer[3], timer[4]])
        self.now = target
        self._timers = [t for t in self._timers if not t[2].cancelled]


class FlaskResponse:
    """The parts of requests.Response the API client reads."""

    def __init__(self, response):
        self.status_code = response.status_code
        self.content = response.data
        self.text = response.get_data(as_text=True)
        self.ok = response.status_code < 400
        self._json = response.get_json(silent=True)

    def json(self):
        if self._json is None:
            raise ValueError('Response body is not JSON')
        return self._json


class FlaskSessionAdapter:
    """requests.Session stand-in that routes calls to the Flask test client."""

    def __init__(self, client, base=API_BASE):
        self.client = client
        self.root = base[:-len('/api')]
        self.calls = []

    def request(self, method, url, json=None, params=None, headers=None, timeout=None):
        path = url[len(self.root):]
        headers = {k: v for k, v in (headers or {}).items() if k.lower() != 'content-type'}
        self.calls.append((method, path))
        response = self.client.open(path, method=method, json=json, query_string=params, headers=headers)
        return FlaskResponse(response)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.Config')
    app.config['TESTING'] = True
    create_schema()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def clean_tables(app):
    """Every test starts with empty tables."""
    yield
    db = get_session()
    db.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        db.execute(table.delete())
    db.commit()
    db.remove()


@pytest.fixture
def alice():
    return Principal(1, 'Alice')


@pytest.fixture
def bob():
    return Principal(2, 'Bob')


@pytest.fixture
def headers_for():
    """Request headers identifying a principal."""
    def factory(principal):
        return {'X-User-Id': str(principal.id), 'X-User-Name': principal.name}
    return factory


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def make_api(client):
    """Build an API client for a principal, wired to the test app."""
    def factory(principal):
        return CotizadorApiClient(API_BASE, principal, session=FlaskSessionAdapter(client))
    return factory


@pytest.fixture
def make_quote(session, alice):
    """Create a persisted quote (version 1) and return its id."""
    def factory(items=None, **header):
        data = dict(header, items=SAMPLE_ITEMS if items is None else items)
        quote = quote_service.create_quote(session, data, alice)
        return quote.id
    return factory


@pytest.fixture
def customer_with_withholding(session):
    """Customer subject to a 3% percepción over the net amount."""
    customer = Customer(code='C001', name='Ferretería del Centro', tax_id='30-12345678-9')
    customer.withholdings.append(WithholdingRule(
        code='IIBB', description='Percepción IIBB', tax_type='IIBB',
        base='NET', rate=3, min_taxable=0, min_amount=0
    ))
    session.add(customer)
    session.commit()
    return customer.code


@pytest.fixture
def catalog(session):
    """Active catalog with new prices for the sample items."""
    session.add_all([
        Product(code='TOR-001', description='Tornillo 1/4', unit_price=120, tax_rate=21, active=True),
        Product(code='TUE-002', description='Tuerca 1/4', unit_price=55, tax_rate=21, active=False),
    ])
    session.commit()
