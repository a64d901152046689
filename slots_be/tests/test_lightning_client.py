import base64
from unittest.mock import MagicMock

import pytest
import requests

from slots_be.exceptions import ProviderException, ProviderTimeoutException
from slots_be.services.lightning_client import (
    LnbitsClient, LndRestClient, UnconfiguredLightningClient, build_lightning_client
)


def _response(payload=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.text = str(payload)
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def _session(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.request.side_effect = error
    else:
        session.request.return_value = response
    return session


# --- LND ---

def test_lnd_create_invoice_converts_r_hash_to_hex():
    raw_hash = bytes(range(32))
    session = _session(_response({'payment_request': 'lnbc10u1abc', 'r_hash': base64.b64encode(raw_hash).decode()}))
    client = LndRestClient('https://lnd.local:8080/', 'abcdef', tls_cert_path='/certs/tls.cert', session=session)

    invoice = client.create_invoice(1000, 'Deposit alice')

    assert invoice.payment_request == 'lnbc10u1abc'
    assert invoice.payment_hash == raw_hash.hex()
    args, kwargs = session.request.call_args
    assert args == ('POST', 'https://lnd.local:8080/v1/invoices')
    assert kwargs['json'] == {'value': 1000, 'memo': 'Deposit alice'}
    assert kwargs['headers']['Grpc-Metadata-macaroon'] == 'abcdef'
    assert kwargs['verify'] == '/certs/tls.cert'
    assert kwargs['timeout'] == 10

def test_lnd_invoice_status_settled():
    session = _session(_response({'settled': True, 'amt_paid_sat': '1500'}))
    client = LndRestClient('https://lnd.local:8080', 'abcdef', session=session)

    status = client.get_invoice_status('ab' * 32)

    assert status.paid is True
    assert status.paid_amount == 1500
    assert status.amount_unit == 'sat'
    assert session.request.call_args[0][1].endswith('/v1/invoice/' + 'ab' * 32)

def test_lnd_invoice_status_open():
    session = _session(_response({'settled': False, 'state': 'OPEN', 'amt_paid_sat': '0'}))
    status = LndRestClient('https://lnd.local:8080', 'abcdef', session=session).get_invoice_status('ab')
    assert status.paid is False

def test_lnd_missing_invoice_fields_is_provider_error():
    session = _session(_response({'payment_request': 'lnbc1'}))
    with pytest.raises(ProviderException):
        LndRestClient('https://lnd.local:8080', 'abcdef', session=session).create_invoice(1, 'memo')


# --- LNbits ---

def test_lnbits_create_invoice():
    session = _session(_response({'payment_hash': 'cd' * 32, 'payment_request': 'lnbc1xyz'}, status_code=201))
    client = LnbitsClient('https://lnbits.local', 'invoice-key', session=session)

    invoice = client.create_invoice(250, 'Deposit bob')

    assert invoice.payment_hash == 'cd' * 32
    assert invoice.payment_request == 'lnbc1xyz'
    args, kwargs = session.request.call_args
    assert args == ('POST', 'https://lnbits.local/api/v1/payments')
    assert kwargs['json'] == {'out': False, 'amount': 250, 'memo': 'Deposit bob'}
    assert kwargs['headers']['X-Api-Key'] == 'invoice-key'

def test_lnbits_status_reports_msat():
    session = _session(_response({'paid': True, 'details': {'amount': 250_000}}))
    status = LnbitsClient('https://lnbits.local', 'invoice-key', session=session).get_invoice_status('cd')
    assert status.paid is True
    assert status.paid_amount == 250_000
    assert status.amount_unit == 'msat'


# --- Transport failures ---

def test_timeout_raises_provider_timeout():
    client = LnbitsClient('https://lnbits.local', 'key', session=_session(error=requests.Timeout()))
    with pytest.raises(ProviderTimeoutException) as exc_info:
        client.create_invoice(1, 'memo')
    assert exc_info.value.status_code == 504

def test_connection_error_raises_provider_error():
    client = LnbitsClient('https://lnbits.local', 'key', session=_session(error=requests.ConnectionError()))
    with pytest.raises(ProviderException) as exc_info:
        client.get_invoice_status('cd')
    assert not isinstance(exc_info.value, ProviderTimeoutException)

def test_http_error_status_raises_provider_error():
    client = LnbitsClient('https://lnbits.local', 'key', session=_session(_response({'detail': 'nope'}, 401)))
    with pytest.raises(ProviderException) as exc_info:
        client.create_invoice(1, 'memo')
    assert exc_info.value.details['http_status'] == 401

def test_invalid_json_raises_provider_error():
    client = LnbitsClient('https://lnbits.local', 'key', session=_session(_response(ValueError('bad json'))))
    with pytest.raises(ProviderException):
        client.get_invoice_status('cd')

def test_non_object_payload_raises_provider_error():
    client = LnbitsClient('https://lnbits.local', 'key', session=_session(_response(['unexpected'])))
    with pytest.raises(ProviderException):
        client.get_invoice_status('cd')


# --- Factory ---

def test_build_lnbits_client():
    client = build_lightning_client({'LIGHTNING_BACKEND': 'lnbits', 'LNBITS_URL': 'https://lnbits.local',
                                     'LNBITS_API_KEY': 'key', 'LIGHTNING_TIMEOUT_SECONDS': 3})
    assert isinstance(client, LnbitsClient)
    assert client.timeout == 3

def test_build_lnd_client_reads_macaroon(tmp_path):
    macaroon = tmp_path / 'admin.macaroon'
    macaroon.write_bytes(b'\x01\x02\xff')
    client = build_lightning_client({'LIGHTNING_BACKEND': 'lnd', 'LND_REST_URL': 'https://lnd.local:8080',
                                     'LND_MACAROON_PATH': str(macaroon), 'LND_TLS_CERT_PATH': None})
    assert isinstance(client, LndRestClient)
    assert client.macaroon_hex == '0102ff'

def test_build_without_credentials_is_unconfigured():
    client = build_lightning_client({'LIGHTNING_BACKEND': 'lnd'})
    assert isinstance(client, UnconfiguredLightningClient)
    with pytest.raises(ProviderException):
        client.create_invoice(1, 'memo')

def test_build_with_unreadable_macaroon_is_unconfigured(tmp_path):
    client = build_lightning_client({'LIGHTNING_BACKEND': 'lnd', 'LND_REST_URL': 'https://lnd.local:8080',
                                     'LND_MACAROON_PATH': str(tmp_path / 'missing.macaroon')})
    assert isinstance(client, UnconfiguredLightningClient)
