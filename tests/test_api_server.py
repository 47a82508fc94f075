import pytest
from fastapi.testclient import TestClient

from holdings_approx.api_server import app, get_config, get_provider
from holdings_approx.config import AppConfig, ApproximationSettings
from holdings_approx.providers import InMemoryWeightMapProvider

from conftest import TOY_FUNDS


@pytest.fixture
def client():
    provider = InMemoryWeightMapProvider(TOY_FUNDS)
    app.dependency_overrides[get_provider] = lambda: provider
    app.dependency_overrides[get_config] = lambda: AppConfig(engine=ApproximationSettings())
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get('/health').json() == {'status': 'ok'}


def test_get_approximation_defaults(client):
    r = client.get('/portfolio-approximation')
    assert r.status_code == 200
    body = r.json()
    assert body['targetEtf'] == 'EBI'
    assert body['baselineEtfs'] == ['VTI', 'VTV', 'IWN']
    assert abs(body['constraints']['weightsSum'] - 1.0) < 1e-4
    assert body['optimizationMetrics']['finalObjectiveValue'] < 1e-8


def test_post_approximation(client):
    r = client.post('/portfolio-approximation', json={
        'targetEtf': 'ebi', 'baselineEtfs': ['vti', 'iwn'], 'method': 'projected_gradient'})
    assert r.status_code == 200
    body = r.json()
    assert abs(body['optimalWeights']['vti'] - 0.75) < 1e-5
    assert abs(body['weightsPercentages']['iwn'] - 25.0) < 1e-3
    assert body['solver']['method'] == 'projected_gradient'


def test_configuration_error_is_400(client):
    r = client.post('/portfolio-approximation', json={'targetEtf': 'EBI', 'baselineEtfs': []})
    assert r.status_code == 400
    assert r.json()['error'] == 'ConfigurationError'
    r = client.post('/portfolio-approximation', json={'baselineEtfs': ['VTI', 'IWN'], 'initialGuess': [1.0]})
    assert r.status_code == 400


def test_data_error_is_404(client):
    r = client.get('/portfolio-approximation', params={'target': 'NOPE', 'baselines': 'NADA'})
    assert r.status_code == 404
    assert r.json()['step'] == 'resolve_universe'
    assert client.get('/holdings/NOPE').status_code == 404


def test_holdings_endpoint(client):
    body = client.get('/holdings/vti').json()
    assert body['symbol'] == 'VTI'
    assert body['weights'] == {'AAA': 0.6, 'BBB': 0.4}
    assert client.get('/holdings/vti', params={'weight_field': 'price'}).status_code == 400


def test_qa_endpoints(client):
    body = client.get('/qa/weight-sums', params={'symbols': 'VTI,IWN'}).json()
    assert [f['etf'] for f in body['funds']] == ['VTI', 'IWN']
    cov = client.get('/qa/coverage').json()
    assert cov['relevant_symbols'] == 2
