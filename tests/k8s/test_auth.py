import base64
import ssl

import aiohttp.web
import pytest

from kubemirror._cogs.clients.api import get
from kubemirror._cogs.clients.auth import APIContext, decode_to_pem, make_headers, make_ssl_context
from kubemirror._cogs.structs.credentials import ConnectionInfo, LoginError

PEM = '-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n'


@pytest.fixture(autouse=True)
def _prevent_retries_in_api_tests(settings):
    settings.networking.error_backoffs = []


async def _headers_of(info, resp_mocker, aresponses, hostname, settings, logger):
    mock = resp_mocker(return_value=aiohttp.web.json_response({}))
    aresponses.add(hostname, '/url', 'get', mock)
    async with APIContext(info) as context:
        await get('/url', context=context, settings=settings, logger=logger)
    return mock.call_args_list[0][0][0].headers


@pytest.mark.parametrize('kwargs, expected', [
    (dict(token='tkn'), 'Bearer tkn'),
    (dict(token='tkn', scheme='Digest'), 'Digest tkn'),
    (dict(scheme='Magic'), 'Magic'),
    (dict(username='me', password='pw'), 'Basic ' + base64.b64encode(b'me:pw').decode()),
])
async def test_authorization_header(
        resp_mocker, aresponses, hostname, settings, logger, kwargs, expected):
    info = ConnectionInfo(server=f'https://{hostname}', **kwargs)
    headers = await _headers_of(info, resp_mocker, aresponses, hostname, settings, logger)
    assert headers['Authorization'] == expected


async def test_no_authorization_header(resp_mocker, aresponses, hostname, settings, logger):
    info = ConnectionInfo(server=f'https://{hostname}')
    headers = await _headers_of(info, resp_mocker, aresponses, hostname, settings, logger)
    assert 'Authorization' not in headers


async def test_extra_headers(resp_mocker, aresponses, hostname, settings, logger):
    info = ConnectionInfo(server=f'https://{hostname}', headers={'X-Custom': 'yes'})
    headers = await _headers_of(info, resp_mocker, aresponses, hostname, settings, logger)
    assert headers['X-Custom'] == 'yes'
    assert headers['User-Agent'].startswith('kubemirror/')


async def test_token_from_file(resp_mocker, aresponses, hostname, settings, logger, tmp_path):
    path = tmp_path / 'token'
    path.write_text('tkn-from-file\n')
    info = ConnectionInfo(server=f'https://{hostname}', token_path=str(path))
    headers = await _headers_of(info, resp_mocker, aresponses, hostname, settings, logger)
    assert headers['Authorization'] == 'Bearer tkn-from-file'


async def test_unreadable_token_file(tmp_path):
    info = ConnectionInfo(server='https://fake-host', token_path=str(tmp_path / 'absent'))
    with pytest.raises(LoginError, match=r"Token file cannot be read"):
        APIContext(info)


async def test_insecure_connections():
    info = ConnectionInfo(server='https://fake-host', insecure=True)
    async with APIContext(info) as context:
        ssl_context = context.session.connector._ssl
        assert ssl_context.verify_mode == ssl.CERT_NONE
        assert not ssl_context.check_hostname


async def test_context_info():
    info = ConnectionInfo(server='https://fake-host', default_namespace='ns1',
                          proxy_url='http://proxy', max_redirects=3)
    async with APIContext(info) as context:
        assert context.server == 'https://fake-host'
        assert context.default_namespace == 'ns1'
        assert context.proxy_url == 'http://proxy'
        assert context.max_redirects == 3
    assert context.session.closed


async def test_unsupported_credentials():
    with pytest.raises(TypeError, match=r"Unsupported credentials"):
        APIContext(object())


async def test_open_responses_are_closed_with_the_context(
        resp_mocker, aresponses, hostname, settings):
    mock = resp_mocker(return_value=aiohttp.web.Response(text='hello'))
    aresponses.add(hostname, '/url', 'get', mock)

    info = ConnectionInfo(server=f'https://{hostname}')
    async with APIContext(info) as context:
        response = await context.session.get(f'https://{hostname}/url')
        context.add_response(response)
        assert context.responses == [response]
    assert response.closed
    assert context.responses == []


@pytest.mark.parametrize('data', [
    PEM,
    PEM.encode('ascii'),
    base64.b64encode(PEM.encode('ascii')),
    base64.b64encode(PEM.encode('ascii')).decode('ascii'),
])
def test_decoding_to_pem(data):
    assert decode_to_pem(data) == PEM


def test_user_agent_is_not_overridden():
    info = ConnectionInfo(server='https://fake-host', headers={'User-Agent': 'mine/1.0'})
    headers = make_headers(info)
    assert headers['User-Agent'] == 'mine/1.0'


def test_extra_headers_are_not_modified():
    extra = {'X-Custom': 'yes'}
    info = ConnectionInfo(server='https://fake-host', token='tkn', headers=extra)
    headers = make_headers(info)
    assert headers['Authorization'] == 'Bearer tkn'
    assert extra == {'X-Custom': 'yes'}


def test_secure_connections_by_default():
    info = ConnectionInfo(server='https://fake-host')
    context = make_ssl_context(info)
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname
