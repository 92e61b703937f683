import asyncio
import html
import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .config import (
    COMPANY_ADDRESS,
    COMPANY_EMAIL,
    COMPANY_GST_NUMBER,
    COMPANY_NAME,
    COMPANY_PHONE,
    COMPANY_WEBSITE,
    EMAIL_DELAY_SEC,
    EMAIL_FAILURE_RATE,
    FAST_CHARGE_PREMIUM,
    PREMIUM_THRESHOLD_KWH,
    TAX_RATE,
)
from .errors import EmailDeliveryFailed, SessionNotTerminal
from .models import ChargingSession, Invoice, InvoiceItem
from .state_machine import Station


@dataclass(frozen=True)
class CompanyInfo:
    name: str = COMPANY_NAME
    address: str = COMPANY_ADDRESS
    phone: str = COMPANY_PHONE
    email: str = COMPANY_EMAIL
    gst_number: str = COMPANY_GST_NUMBER
    website: str = COMPANY_WEBSITE


def generate_invoice_number(on: datetime, rng: random.Random) -> str:
    """``INV`` + yymmdd + four random digits; collisions are possible."""
    return f"INV{on:%y%m%d}{rng.randrange(10000):04d}"


class InvoiceGenerator:
    def __init__(
        self,
        tax_rate: float = TAX_RATE,
        premium_fee: float = FAST_CHARGE_PREMIUM,
        premium_threshold_kwh: float = PREMIUM_THRESHOLD_KWH,
        rng: Optional[random.Random] = None,
    ):
        self.tax_rate = tax_rate
        self.premium_fee = premium_fee
        self.premium_threshold_kwh = premium_threshold_kwh
        self.rng = rng or random.Random()

    def generate(self, session: ChargingSession, station: Station, transaction_id: Optional[str] = None) -> Invoice:
        if not session.is_terminal:
            raise SessionNotTerminal(session.id, session.status)

        items = [
            InvoiceItem(
                description=f"EV Charging Session - {station.name}",
                units=session.energy_consumed,
                rate=session.cost_per_kwh,
                amount=session.total_cost,
            )
        ]
        if session.energy_consumed > self.premium_threshold_kwh:
            items.append(
                InvoiceItem(
                    description="Fast Charging Premium",
                    units=1,
                    rate=self.premium_fee,
                    amount=self.premium_fee,
                    category="service",
                )
            )

        subtotal = sum(item.amount for item in items)
        tax = subtotal * self.tax_rate
        return Invoice(
            id=f"inv-{session.id}",
            session_id=session.id,
            user_id=session.user_id,
            vehicle_id=session.vehicle_id,
            station_name=station.name,
            invoice_number=generate_invoice_number(session.end_time, self.rng),
            date=session.end_time,
            items=tuple(items),
            subtotal=subtotal,
            tax=tax,
            total=subtotal + tax,
            tax_rate=self.tax_rate,
            transaction_id=transaction_id,
        )


def _money(amount: float) -> str:
    return f"₹{amount:,.2f}"


def to_display_document(invoice: Invoice, company: CompanyInfo) -> str:
    """Printable HTML for ``invoice``; depends on nothing but its arguments."""
    e = html.escape
    rows = "".join(
        f"<tr><td>{e(item.description)}</td><td>{item.units:.2f}</td>"
        f"<td>{_money(item.rate)}</td><td>{_money(item.amount)}</td></tr>"
        for item in invoice.items
    )
    tax_pct = f"{invoice.tax_rate * 100:g}"
    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<title>Invoice {e(invoice.invoice_number)}</title>
<style>
body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; }}
.invoice {{ max-width: 800px; margin: 0 auto; }}
table {{ width: 100%; border-collapse: collapse; margin-bottom: 20px; }}
th, td {{ padding: 12px; text-align: left; border-bottom: 1px solid #ddd; }}
.total-section {{ text-align: right; }}
.total-row {{ font-weight: bold; font-size: 18px; }}
</style>
</head>
<body>
<div class="invoice">
<div class="header">
<h1>{e(company.name)}</h1>
<p>{e(company.address)}</p>
<p>Phone: {e(company.phone)}</p>
<p>Email: {e(company.email)}</p>
<p>GST: {e(company.gst_number)}</p>
</div>
<div class="invoice-details">
<h2>INVOICE</h2>
<p><strong>Invoice #:</strong> {e(invoice.invoice_number)}</p>
<p><strong>Date:</strong> {invoice.date:%d %b %Y}</p>
<p><strong>Vehicle:</strong> {e(invoice.vehicle_id)}</p>
</div>
<div class="billing-info">
<h3>Charging Session Details</h3>
<p><strong>Session ID:</strong> {e(invoice.session_id)}</p>
<p><strong>Station:</strong> {e(invoice.station_name)}</p>
<p><strong>Payment Method:</strong> {e(invoice.payment_method)}</p>
<p><strong>Transaction ID:</strong> {e(invoice.transaction_id or "-")}</p>
</div>
<table>
<thead><tr><th>Description</th><th>Units (kWh)</th><th>Rate</th><th>Amount</th></tr></thead>
<tbody>{rows}</tbody>
</table>
<div class="total-section">
<p>Subtotal: {_money(invoice.subtotal)}</p>
<p>GST ({tax_pct}%): {_money(invoice.tax)}</p>
<p class="total-row">Total: {_money(invoice.total)}</p>
</div>
<div class="footer">
<p>Thank you for charging with {e(company.name)}</p>
<p>Visit us at {e(company.website)}</p>
</div>
</div>
</body>
</html>
"""


class InvoiceMailer:
    """Simulated e-mail delivery; the outcome is decided once per send."""

    def __init__(
        self,
        failure_rate: float = EMAIL_FAILURE_RATE,
        delay_sec: float = EMAIL_DELAY_SEC,
        rng: Optional[random.Random] = None,
    ):
        self.failure_rate = failure_rate
        self.delay_sec = delay_sec
        self.rng = rng or random.Random()

    async def send(self, invoice: Invoice, email: str) -> None:
        await asyncio.sleep(self.delay_sec)
        if self.rng.random() < self.failure_rate:
            logging.warning(f"Emailing invoice {invoice.invoice_number} to {email} failed")
            raise EmailDeliveryFailed(f"Could not deliver invoice {invoice.invoice_number} to {email}")
        logging.info(f"Emailed invoice {invoice.invoice_number} to {email}")
