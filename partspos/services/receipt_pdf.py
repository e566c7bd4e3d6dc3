from __future__ import annotations

import os
import re

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from partspos.config import settings
from partspos.services.checkout import SaleReceipt
from partspos.utils.formatters import amount


def _safe_name(reference: str) -> str:
    return re.sub(r"[^A-Za-z0-9_\-]", "_", reference) or "sale"


def generate_receipt_pdf(receipt: SaleReceipt, export_dir: str | None = None) -> str:
    out_dir = export_dir or settings.export_dir
    os.makedirs(out_dir, exist_ok=True)
    path = os.path.join(out_dir, f"receipt_{_safe_name(receipt.reference)}.pdf")

    t = receipt.totals
    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"SALE {receipt.reference}")
    y -= 20

    c.setFont("Helvetica", 11)
    c.drawString(40, y, f"Customer: {receipt.customer_name}")
    y -= 16
    c.drawString(40, y, f"Date: {receipt.sale_date}")
    y -= 16
    c.drawString(40, y, f"Payment: {receipt.payment_method}")
    y -= 24

    # header
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "Item")
    c.drawString(290, y, "Qty")
    c.drawString(330, y, "Price")
    c.drawString(400, y, "Disc %")
    c.drawString(490, y, "Total")
    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    c.setFont("Helvetica", 10)
    for it, ln in zip(receipt.lines, t.lines):
        c.drawString(40, y, it.label[:40])
        c.drawRightString(310, y, str(it.quantity))
        c.drawRightString(385, y, amount(ln.final_unit_price))
        c.drawRightString(440, y, f"{float(it.discount_rate):g}")
        c.drawRightString(550, y, amount(ln.total_incl_tax))
        y -= 14
        if y < 140:
            c.showPage()
            y = h - 50
            c.setFont("Helvetica", 10)

    y -= 10
    c.line(40, y, 550, y)
    y -= 18

    rows = [
        ("Total excl. tax", t.total_excl_tax),
        ("Tax", t.total_tax),
        ("Subtotal incl. tax", t.subtotal_incl_tax),
    ]
    if t.global_discount > 0:
        rows.append((f"Discount {float(t.global_discount):g}%", -t.global_discount_amount))
    if t.loyalty_discount > 0:
        rows.append((f"Loyalty {float(t.loyalty_discount):g}%", -t.loyalty_discount_amount))

    c.setFont("Helvetica", 10)
    for label, value in rows:
        c.drawString(360, y, label)
        c.drawRightString(550, y, amount(value))
        y -= 14

    y -= 6
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(550, y, f"TOTAL: {amount(t.total_incl_tax)} {settings.currency}")

    c.save()
    return path
