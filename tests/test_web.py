"""Tests for the Flask control API."""

import io
import threading
import time
import zipfile

import pytest

from conftest import html_page
from docs_md_crawler.crawler import DocsCrawler, ExportOptions
from docs_md_crawler.models import ImageMode
from docs_md_crawler.session import Session
from docs_md_crawler.web import create_app


START = "https://example.com/docs/start"
CHILD = "https://example.com/docs/start/child"

FILLER = "<p>" + "Readable documentation paragraph for the exporter. " * 3 + "</p>"


@pytest.fixture
def app(fetcher, transport, tmp_path):
    transport.routes.update({
        START: html_page(
            "<main><h1>Start</h1>" + FILLER + '<a href="/docs/start/child">Child</a></main>',
            head='<meta property="og:site_name" content="Example Docs">'
        ),
        CHILD: html_page("<main><h1>Child Page</h1>" + FILLER + "</main>"),
    })
    crawler = DocsCrawler(
        output_dir=str(tmp_path),
        fetcher=fetcher,
        session=Session(),
        export_options=ExportOptions(image_mode=ImageMode.NONE)
    )
    app = create_app(crawler)
    app.config['TESTING'] = True
    yield app
    app.crawler_service.shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


def scan(app, client, **payload):
    payload.setdefault('url', START)
    response = client.post('/api/scan', json=payload)
    assert response.status_code == 202
    assert app.crawler_service.wait(timeout=10) is None
    return response


def test_scan_requires_url(client):
    response = client.post('/api/scan', json={})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'URL is required'


def test_scan_rejects_bad_parameters(client):
    response = client.post('/api/scan', json={'url': START, 'maxDepth': 'deep'})
    assert response.status_code == 400
    response = client.post('/api/scan', json={'url': START, 'mode': 'sideways'})
    assert response.status_code == 400


def test_scan_lists_pages_and_status(app, client):
    scan(app, client, excludes='/login, /admin')

    status = client.get('/api/status').get_json()
    assert status['state'] == 'completed'
    assert status['pages'] == 2
    assert status['rootPath'] == '/docs'
    assert status['running'] is False
    assert status['error'] is None

    pages = client.get('/api/pages').get_json()['pages']
    assert pages == [
        {'url': START, 'title': 'Start'},
        {'url': CHILD, 'title': 'Child Page'},
    ]


def test_export_requires_pages(client):
    response = client.post('/api/export', json={})
    assert response.status_code == 400


def test_export_and_download(app, client):
    assert client.get('/api/download').status_code == 404
    scan(app, client)

    response = client.post('/api/export', json={'urls': [CHILD], 'includeSummary': False})
    assert response.status_code == 202
    assert response.get_json()['pages'] == 1
    assert app.crawler_service.wait(timeout=10) is None

    download = client.get('/api/download')
    assert download.status_code == 200
    assert download.mimetype == 'application/zip'
    assert 'Example-Docs-' in download.headers['Content-Disposition']
    with zipfile.ZipFile(io.BytesIO(download.data)) as archive:
        assert archive.namelist() == ['start/Child Page.md']


def test_export_of_unknown_urls(app, client):
    scan(app, client)
    response = client.post('/api/export', json={'urls': ['https://example.com/nope']})
    assert response.status_code == 400


def test_busy_session_rejects_second_job(app, client, transport):
    gate = threading.Event()
    transport.on_request = lambda url: gate.wait(5)

    response = client.post('/api/scan', json={'url': START})
    assert response.status_code == 202
    for _ in range(500):
        if transport.calls[START]:
            break
        time.sleep(0.01)
    assert client.post('/api/scan', json={'url': START}).status_code == 409
    assert client.post('/api/stop').status_code == 200

    transport.on_request = None
    gate.set()
    assert app.crawler_service.wait(timeout=10) is None
    assert client.get('/api/status').get_json()['state'] == 'stopped'


def test_controls_when_idle(client):
    assert client.post('/api/pause').status_code == 400
    assert client.post('/api/stop').status_code == 400
    assert client.post('/api/resume').status_code == 200


def test_failed_items_can_be_retried(app, client, transport):
    transport.routes[CHILD] = (500, '')
    scan(app, client)

    [item] = client.get('/api/failed').get_json()['failed']
    assert item['reason'] == 'discover:http-500'
    assert client.post('/api/failed/999/retry').status_code == 404

    transport.routes[CHILD] = html_page("<h1>Child Page</h1>")
    response = client.post(f"/api/failed/{item['id']}/retry")

    assert response.status_code == 200
    assert response.get_json() == {'ok': True, 'failed': []}


def test_scan_rejects_url_without_host(client):
    response = client.post('/api/scan', json={'url': 'https://'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Invalid URL format'
