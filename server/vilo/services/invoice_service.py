"""Booking invoices: HTML rendering and PDF printing through headless Chromium."""

import html
import logging
from string import Template
from uuid import UUID

from playwright.async_api import async_playwright
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..models.booking import SETTLED_PAYMENT_STATUSES, Booking
from ..models.company import Company, Property
from .booking_service import BookingService

logger = logging.getLogger(__name__)

INVOICE_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Invoice $booking_reference</title>
<style>
  body { font-family: Helvetica, Arial, sans-serif; color: #222; margin: 0; padding: 32px; font-size: 13px; }
  h1 { font-size: 22px; margin: 0 0 4px; }
  .muted { color: #666; }
  .header { display: flex; justify-content: space-between; margin-bottom: 24px; }
  table { width: 100%; border-collapse: collapse; margin-bottom: 16px; }
  th, td { text-align: left; padding: 6px 8px; border-bottom: 1px solid #e5e5e5; }
  td.amount, th.amount { text-align: right; }
  .totals td { border: none; padding: 3px 8px; }
  .grand-total td { font-weight: bold; font-size: 15px; border-top: 2px solid #222; }
</style>
</head>
<body>
<div class="header">
  <div>
    <h1>$company_name</h1>
    <div>$property_name</div>
    <div class="muted">$property_address</div>
    <div class="muted">$property_contact</div>
  </div>
  <div>
    <h1>Invoice</h1>
    <div>Booking <strong>$booking_reference</strong></div>
    <div class="muted">Issued $issued_on</div>
    <div class="muted">Status: $booking_status</div>
  </div>
</div>

<h3>Guest</h3>
<p>$guest_name<br>$guest_email<br>$guest_phone</p>
<p>Check-in $check_in &middot; Check-out $check_out &middot; $nights night(s)</p>

<h3>Accommodation</h3>
<table>
  <thead><tr><th>Room</th><th>Guests</th><th class="amount">Amount</th></tr></thead>
  <tbody>$room_rows</tbody>
</table>

$addon_section

<table class="totals">
  <tr><td>Subtotal</td><td class="amount">$subtotal</td></tr>
  <tr><td>Discount $coupon</td><td class="amount">-$discount</td></tr>
  <tr><td>Tax</td><td class="amount">$tax</td></tr>
  <tr class="grand-total"><td>Total</td><td class="amount">$total</td></tr>
</table>

<h3>Payments</h3>
<table>
  <thead><tr><th>Date</th><th>Method</th><th>Reference</th><th class="amount">Amount</th></tr></thead>
  <tbody>$payment_rows</tbody>
</table>

<table class="totals">
  <tr><td>Amount paid</td><td class="amount">$amount_paid</td></tr>
  <tr><td>Refunded</td><td class="amount">$total_refunded</td></tr>
  <tr class="grand-total"><td>Balance due</td><td class="amount">$balance_due</td></tr>
</table>
</body>
</html>
""")

ADDON_SECTION = Template("""<h3>Extras</h3>
<table>
  <thead><tr><th>Item</th><th>Quantity</th><th class="amount">Amount</th></tr></thead>
  <tbody>$addon_rows</tbody>
</table>""")


def format_money(amount: int, currency: str) -> str:
    """Minor units to a display string, e.g. 123456 ZAR -> 'ZAR 1,234.56'."""
    sign = "-" if amount < 0 else ""
    major, minor = divmod(abs(amount), 100)
    return f"{sign}{currency} {major:,}.{minor:02d}"


def _e(value) -> str:
    return html.escape(str(value)) if value is not None else ""


def render_invoice_html(booking: Booking, prop: Property, company: Company) -> str:
    """Render a booking into a self-contained HTML invoice."""
    currency = booking.currency

    def money(amount: int) -> str:
        return _e(format_money(amount, currency))

    room_rows = "".join(
        f"<tr><td>{_e(line.room_name)}</td>"
        f"<td>{line.adults} adult(s), {line.children} child(ren)</td>"
        f"<td class=\"amount\">{money(line.room_subtotal)}</td></tr>"
        for line in booking.rooms
    )
    addon_section = ""
    if booking.addons:
        addon_rows = "".join(
            f"<tr><td>{_e(line.addon_name)}</td><td>{line.quantity}</td>"
            f"<td class=\"amount\">{money(line.addon_total)}</td></tr>"
            for line in booking.addons
        )
        addon_section = ADDON_SECTION.substitute(addon_rows=addon_rows)

    settled = [p for p in booking.payments if p.status in SETTLED_PAYMENT_STATUSES]
    payment_rows = "".join(
        f"<tr><td>{_e((p.paid_at or p.created_at).date().isoformat())}</td>"
        f"<td>{_e(p.payment_method)}</td><td>{_e(p.payment_reference or '')}</td>"
        f"<td class=\"amount\">{money(p.amount)}</td></tr>"
        for p in settled
    ) or '<tr><td colspan="4" class="muted">No payments received</td></tr>'

    address = ", ".join(part for part in (prop.address, prop.city, prop.country) if part)
    contact = " | ".join(part for part in (prop.email, prop.phone) if part)

    return INVOICE_TEMPLATE.substitute(
        company_name=_e(company.name),
        property_name=_e(prop.name),
        property_address=_e(address),
        property_contact=_e(contact),
        booking_reference=_e(booking.booking_reference),
        issued_on=_e(utcnow().date().isoformat()),
        booking_status=_e(booking.booking_status.replace("_", " ")),
        guest_name=_e(booking.guest_name),
        guest_email=_e(booking.guest_email),
        guest_phone=_e(booking.guest_phone),
        check_in=_e(booking.check_in_date.isoformat()),
        check_out=_e(booking.check_out_date.isoformat()),
        nights=booking.total_nights,
        room_rows=room_rows,
        addon_section=addon_section,
        subtotal=money(booking.subtotal),
        coupon=f"({_e(booking.coupon_code)})" if booking.coupon_code else "",
        discount=money(booking.discount_amount),
        tax=money(booking.tax_amount),
        total=money(booking.total_amount),
        payment_rows=payment_rows,
        amount_paid=money(booking.amount_paid),
        total_refunded=money(booking.total_refunded),
        balance_due=money(booking.balance_due),
    )


async def render_pdf(document: str) -> bytes:
    """Print an HTML document to an A4 PDF with headless Chromium."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(
            headless=True,
            args=["--disable-dev-shm-usage", "--no-sandbox"],
        )
        try:
            page = await browser.new_page()
            await page.set_content(document, wait_until="load")
            return await page.pdf(
                format="A4",
                print_background=True,
                margin={"top": "16mm", "bottom": "16mm", "left": "12mm", "right": "12mm"},
            )
        finally:
            await browser.close()


class InvoiceService:
    """Builds invoices for bookings the caller may view."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.bookings = BookingService(db)

    async def invoice_html(self, booking_id: UUID, user: dict) -> tuple[Booking, str]:
        booking = await self.bookings.get_booking_by_id_or_raise(booking_id)
        await self.bookings.ensure_can_view(booking, user)

        prop = await self.bookings.rooms.get_property_by_id_or_raise(booking.property_id)
        company = await self.bookings.rooms.get_company_for_property(prop)
        return booking, render_invoice_html(booking, prop, company)

    async def invoice_pdf(self, booking_id: UUID, user: dict) -> tuple[Booking, bytes]:
        booking, document = await self.invoice_html(booking_id, user)
        pdf = await render_pdf(document)
        logger.info(
            "Invoice PDF rendered",
            extra={"booking_id": str(booking_id), "size_bytes": len(pdf)},
        )
        return booking, pdf
