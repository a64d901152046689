import secrets

from slots_be.services.lightning_client import Invoice, InvoiceStatus, LightningClient


class FakeLightningClient(LightningClient):
    """In-memory payment provider. Tests mark invoices paid explicitly."""

    name = 'fake'

    def __init__(self):
        self.invoices = {}  # payment_hash -> {amount, memo, status}
        self.create_calls = 0
        self.status_calls = 0
        self.error = None  # exception raised by the next call, if set

    def _maybe_fail(self):
        if self.error is not None:
            error, self.error = self.error, None
            raise error

    def create_invoice(self, amount_sats, memo):
        self.create_calls += 1
        self._maybe_fail()
        payment_hash = secrets.token_hex(32)
        self.invoices[payment_hash] = {
            'amount': amount_sats,
            'memo': memo,
            'status': InvoiceStatus(paid=False),
        }
        return Invoice(payment_request=f"lnbcrt{amount_sats}n1fake{payment_hash[:16]}", payment_hash=payment_hash)

    def get_invoice_status(self, payment_hash):
        self.status_calls += 1
        self._maybe_fail()
        invoice = self.invoices.get(payment_hash)
        if invoice is None:
            return InvoiceStatus(paid=False)
        return invoice['status']

    def mark_paid(self, payment_hash, paid_amount=None, amount_unit='sat'):
        invoice = self.invoices[payment_hash]
        if paid_amount is None:
            paid_amount = invoice['amount']
        invoice['status'] = InvoiceStatus(paid=True, paid_amount=paid_amount, amount_unit=amount_unit)
