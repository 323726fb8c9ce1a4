"""
Orthodontic Practice Backend - Payment Receipt PDFs
Renders clinic-letterhead receipts with VAT breakdown
"""
from fpdf import FPDF
from fpdf.enums import XPos, YPos
from datetime import datetime
from typing import Dict, Optional
import os
import logging

from sqlalchemy.orm import Session

from ..config import (
    CLINIC_NAME, CLINIC_ADDRESS, CLINIC_PHONE, CLINIC_EMAIL, CLINIC_VAT_NUMBER,
    DEFAULT_VAT_RATE, RECEIPTS_DIR
)
from ..errors import BadRequestError
from ..models import Payment, PaymentStatus
from .payment_service import get_payment

logger = logging.getLogger(__name__)

RECEIPT_STATUSES = (PaymentStatus.PAID, PaymentStatus.PARTIAL)

METHOD_LABELS = {
    "CASH": "Cash",
    "CARD": "Card",
    "BANK_TRANSFER": "Bank transfer",
    "CHECK": "Check",
    "INSURANCE": "Insurance",
    "OTHER": "Other",
}


def sanitize_text(text: str) -> str:
    """
    Replace common Unicode punctuation with ASCII and drop anything outside latin-1,
    which the core PDF fonts cannot encode.
    """
    if text is None:
        return ""
    if not isinstance(text, str):
        text = str(text)

    replacements = {
        '’': "'",   # Right single quote
        '‘': "'",   # Left single quote
        '“': '"',   # Left double quote
        '”': '"',   # Right double quote
        '–': '-',   # En dash
        '—': '--',  # Em dash
        '…': '...', # Ellipsis
        ' ': ' ',   # Non-breaking space
        '€': 'EUR', # Euro sign
        '•': '*',   # Bullet
    }
    for unicode_char, ascii_char in replacements.items():
        text = text.replace(unicode_char, ascii_char)

    return text.encode('latin-1', errors='replace').decode('latin-1')


def calculate_totals(amount: float, discount: float = 0, vat_rate: float = DEFAULT_VAT_RATE) -> Dict[str, float]:
    """net = amount - discount, vat = net * rate / 100, total = net + vat"""
    subtotal = round(amount, 2)
    discount = round(discount or 0, 2)
    net = round(max(subtotal - discount, 0), 2)
    vat = round(net * vat_rate / 100, 2)
    return {
        "subtotal": subtotal,
        "discount": discount,
        "net": net,
        "vat_rate": vat_rate,
        "vat": vat,
        "total": round(net + vat, 2),
    }


class ReceiptPDF(FPDF):
    """Receipt with clinic letterhead"""

    def header(self):
        self.set_font('Helvetica', 'B', 18)
        self.set_text_color(30, 64, 124)
        self.cell(0, 10, sanitize_text(CLINIC_NAME.upper()), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')

        self.set_font('Helvetica', '', 9)
        self.set_text_color(100, 100, 100)
        contact = " | ".join(part for part in (CLINIC_ADDRESS, CLINIC_PHONE, CLINIC_EMAIL) if part)
        if contact:
            self.cell(0, 5, sanitize_text(contact), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')
        if CLINIC_VAT_NUMBER:
            self.cell(0, 5, sanitize_text(f"VAT No: {CLINIC_VAT_NUMBER}"),
                      new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')

        self.set_draw_color(30, 64, 124)
        self.set_line_width(0.5)
        self.line(10, self.get_y() + 2, 200, self.get_y() + 2)
        self.ln(6)
        self.set_text_color(0, 0, 0)

    def footer(self):
        self.set_y(-15)
        self.set_font('Helvetica', 'I', 8)
        self.set_text_color(100, 100, 100)
        self.cell(0, 5, f'Page {self.page_no()}/{{nb}}', align='C')
        self.set_text_color(0, 0, 0)

    def section_title(self, title: str):
        self.set_font('Helvetica', 'B', 12)
        self.set_fill_color(235, 241, 250)
        self.cell(0, 8, sanitize_text(title), new_x=XPos.LMARGIN, new_y=YPos.NEXT, fill=True)
        self.ln(2)

    def add_field(self, label: str, value):
        self.set_font('Helvetica', 'B', 10)
        label = sanitize_text(f"{label}: ")
        self.cell(self.get_string_width(label) + 1, 6, label)
        self.set_font('Helvetica', '', 10)
        self.multi_cell(0, 6, sanitize_text(value if value is not None else ""),
                        new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def amount_row(self, label: str, value: str, bold: bool = False):
        self.set_font('Helvetica', 'B' if bold else '', 11)
        self.cell(140, 7, sanitize_text(label), align='R')
        self.cell(0, 7, sanitize_text(value), new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='R')


def receipt_number_for(payment: Payment, issued: Optional[datetime] = None) -> str:
    issued = issued or datetime.now()
    return f"RCPT-{issued.strftime('%Y%m%d')}-{payment.id:06d}"


def generate_receipt_pdf(payment: Payment, output_folder: str = RECEIPTS_DIR) -> str:
    """Render the receipt for a payment and return the file path"""
    os.makedirs(output_folder, exist_ok=True)

    patient = payment.patient
    vat_rate = payment.vat_rate if payment.vat_rate is not None else DEFAULT_VAT_RATE
    totals = calculate_totals(payment.amount, payment.discount or 0, vat_rate)
    currency = payment.currency

    pdf = ReceiptPDF()
    pdf.alias_nb_pages()
    pdf.add_page()

    pdf.set_font('Helvetica', 'B', 16)
    pdf.cell(0, 10, "RECEIPT", new_x=XPos.LMARGIN, new_y=YPos.NEXT, align='C')
    pdf.ln(2)

    pdf.add_field("Receipt No", payment.receipt_number)
    pdf.add_field("Date", (payment.paid_date or datetime.now()).strftime("%d/%m/%Y"))
    pdf.add_field("Payment method", METHOD_LABELS.get(payment.payment_method.value, payment.payment_method.value))
    if payment.transaction_id:
        pdf.add_field("Transaction", payment.transaction_id)
    pdf.ln(3)

    pdf.section_title("Patient")
    pdf.add_field("Name", patient.full_name)
    if patient.address or patient.city:
        pdf.add_field("Address", ", ".join(p for p in (patient.address, patient.postal_code, patient.city) if p))
    if patient.phone:
        pdf.add_field("Phone", patient.phone)
    if patient.email:
        pdf.add_field("Email", patient.email)
    pdf.ln(3)

    pdf.section_title("Services")
    description = payment.description or "Orthodontic treatment"
    if payment.treatment_plan:
        description = f"{description} ({payment.treatment_plan.title})"
    pdf.set_font('Helvetica', '', 10)
    pdf.multi_cell(0, 6, sanitize_text(description), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(4)

    pdf.amount_row("Subtotal", f"{totals['subtotal']:.2f} {currency}")
    if totals["discount"]:
        pdf.amount_row("Discount", f"-{totals['discount']:.2f} {currency}")
    pdf.amount_row("Net amount", f"{totals['net']:.2f} {currency}")
    pdf.amount_row(f"VAT {totals['vat_rate']:g}%", f"{totals['vat']:.2f} {currency}")
    pdf.amount_row("Total", f"{totals['total']:.2f} {currency}", bold=True)

    if payment.notes:
        pdf.ln(4)
        pdf.section_title("Notes")
        pdf.set_font('Helvetica', '', 10)
        pdf.multi_cell(0, 6, sanitize_text(payment.notes))

    filename = f"{payment.receipt_number}.pdf"
    filepath = os.path.join(output_folder, filename)
    pdf.output(filepath)

    logger.info(f"🧾 Receipt generated: {filepath}")
    return filepath


def issue_receipt(db: Session, payment_id: int, output_folder: str = RECEIPTS_DIR) -> str:
    """Assign a receipt number on first issue, then render the PDF"""
    payment = get_payment(db, payment_id)
    if payment.status not in RECEIPT_STATUSES:
        raise BadRequestError("Receipts can only be issued for paid or partially paid payments")

    if not payment.receipt_number:
        payment.receipt_number = receipt_number_for(payment)
        db.commit()
        db.refresh(payment)
        logger.info(f"🔢 Receipt number {payment.receipt_number} assigned to payment {payment.id}")

    return generate_receipt_pdf(payment, output_folder)
