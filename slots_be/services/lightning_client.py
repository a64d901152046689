"""
Lightning payment provider clients.

The rest of the application only needs two operations from the provider:
mint an invoice for N sats, and ask whether an invoice has been paid. Both LND
(REST API) and LNbits are supported behind the same small interface.
"""
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from slots_be.exceptions import ProviderException, ProviderTimeoutException

logger = logging.getLogger(__name__)


@dataclass
class Invoice:
    payment_request: str
    payment_hash: str


@dataclass
class InvoiceStatus:
    paid: bool
    paid_amount: Optional[int] = None
    amount_unit: Optional[str] = None  # 'sat', 'msat' or None when the provider does not say


class LightningClient:
    """Interface shared by the provider clients."""

    name = 'base'

    def create_invoice(self, amount_sats: int, memo: str) -> Invoice:
        raise NotImplementedError

    def get_invoice_status(self, payment_hash: str) -> InvoiceStatus:
        raise NotImplementedError


class UnconfiguredLightningClient(LightningClient):
    """Stand-in used when provider credentials are missing; every call fails cleanly."""

    name = 'unconfigured'

    def __init__(self, reason: str = "Lightning provider is not configured"):
        self.reason = reason

    def create_invoice(self, amount_sats, memo):
        raise ProviderException(self.reason)

    def get_invoice_status(self, payment_hash):
        raise ProviderException(self.reason)


class _HttpLightningClient(LightningClient):
    def __init__(self, base_url: str, timeout: float = 10, session: requests.Session = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.http = session or requests.Session()

    def _headers(self) -> dict:
        return {'Content-Type': 'application/json'}

    def _request_kwargs(self) -> dict:
        return {}

    def _request(self, method: str, path: str, payload: dict = None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(
                method, url, json=payload, headers=self._headers(),
                timeout=self.timeout, **self._request_kwargs()
            )
        except requests.Timeout as e:
            logger.warning(f"{self.name} request timed out: {method} {path}")
            raise ProviderTimeoutException(details={'provider': self.name}) from e
        except requests.RequestException as e:
            logger.error(f"{self.name} request failed: {method} {path}: {e}")
            raise ProviderException("Payment provider unreachable", details={'provider': self.name}) from e

        if response.status_code >= 400:
            logger.error(f"{self.name} returned HTTP {response.status_code} for {method} {path}: {response.text[:200]}")
            raise ProviderException(
                "Payment provider rejected the request",
                details={'provider': self.name, 'http_status': response.status_code}
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderException("Payment provider returned invalid JSON", details={'provider': self.name}) from e

        if not isinstance(data, dict):
            raise ProviderException("Payment provider returned an unexpected payload", details={'provider': self.name})
        return data


def _to_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class LndRestClient(_HttpLightningClient):
    """Talks to an LND node through its REST gateway, authenticated by macaroon."""

    name = 'lnd'

    def __init__(self, rest_url: str, macaroon_hex: str, tls_cert_path: str = None, timeout: float = 10,
                 session: requests.Session = None):
        super().__init__(rest_url, timeout=timeout, session=session)
        self.macaroon_hex = macaroon_hex
        self.tls_cert_path = tls_cert_path

    def _headers(self):
        headers = super()._headers()
        headers['Grpc-Metadata-macaroon'] = self.macaroon_hex
        return headers

    def _request_kwargs(self):
        # LND uses a self-signed certificate; verify against it when we have it.
        return {'verify': self.tls_cert_path or True}

    def create_invoice(self, amount_sats, memo):
        data = self._request('POST', '/v1/invoices', {'value': amount_sats, 'memo': memo})
        logger.debug(f"LND invoice response: {data}")

        payment_request = data.get('payment_request')
        r_hash = data.get('r_hash')
        if not payment_request or not r_hash:
            raise ProviderException("Payment provider did not return an invoice", details={'provider': self.name})

        try:
            payment_hash = base64.b64decode(r_hash).hex()
        except (binascii.Error, ValueError) as e:
            raise ProviderException("Payment provider returned a malformed payment hash",
                                    details={'provider': self.name}) from e
        return Invoice(payment_request=payment_request, payment_hash=payment_hash)

    def get_invoice_status(self, payment_hash):
        data = self._request('GET', f'/v1/invoice/{payment_hash}')
        paid = bool(data.get('settled')) or data.get('state') == 'SETTLED'
        return InvoiceStatus(paid=paid, paid_amount=_to_int(data.get('amt_paid_sat')), amount_unit='sat')


class LnbitsClient(_HttpLightningClient):
    """Talks to an LNbits wallet using its invoice/read API key."""

    name = 'lnbits'

    def __init__(self, url: str, api_key: str, timeout: float = 10, session: requests.Session = None):
        super().__init__(url, timeout=timeout, session=session)
        self.api_key = api_key

    def _headers(self):
        headers = super()._headers()
        headers['X-Api-Key'] = self.api_key
        return headers

    def create_invoice(self, amount_sats, memo):
        data = self._request('POST', '/api/v1/payments', {'out': False, 'amount': amount_sats, 'memo': memo})
        payment_request = data.get('payment_request') or data.get('bolt11')
        payment_hash = data.get('payment_hash')
        if not payment_request or not payment_hash:
            raise ProviderException("Payment provider did not return an invoice", details={'provider': self.name})
        return Invoice(payment_request=payment_request, payment_hash=payment_hash)

    def get_invoice_status(self, payment_hash):
        data = self._request('GET', f'/api/v1/payments/{payment_hash}')
        details = data.get('details') or {}
        # LNbits reports payment amounts in millisatoshis.
        return InvoiceStatus(paid=bool(data.get('paid')), paid_amount=_to_int(details.get('amount')),
                             amount_unit='msat')


def _read_macaroon_hex(path: str) -> Optional[str]:
    try:
        with open(path, 'rb') as f:
            macaroon_hex = f.read().hex()
        logger.info("Macaroon loaded and converted to hex")
        return macaroon_hex
    except OSError as e:
        logger.error(f"Error reading macaroon at {path}: {e}")
        return None


def build_lightning_client(config) -> LightningClient:
    """
    Creates the provider client once at startup from the application config.

    Missing credentials do not stop the server; deposits fail with a provider
    error instead, and a warning is logged.
    """
    backend = config.get('LIGHTNING_BACKEND', 'lnd')
    timeout = config.get('LIGHTNING_TIMEOUT_SECONDS', 10)

    if backend == 'lnbits':
        url, api_key = config.get('LNBITS_URL'), config.get('LNBITS_API_KEY')
        if not url or not api_key:
            logger.warning("Missing LNbits credentials. Deposits will fail.")
            return UnconfiguredLightningClient()
        return LnbitsClient(url, api_key, timeout=timeout)

    rest_url = config.get('LND_REST_URL')
    macaroon_path = config.get('LND_MACAROON_PATH')
    tls_cert_path = config.get('LND_TLS_CERT_PATH')
    if not rest_url or not macaroon_path:
        logger.warning("Missing LND credentials. Deposits will fail.")
        return UnconfiguredLightningClient()

    macaroon_hex = _read_macaroon_hex(macaroon_path)
    if not macaroon_hex:
        return UnconfiguredLightningClient("Lightning provider macaroon could not be read")
    return LndRestClient(rest_url, macaroon_hex, tls_cert_path=tls_cert_path, timeout=timeout)
