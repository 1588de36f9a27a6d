"""
Receipt PDF rendering with reportlab.
"""
from io import BytesIO
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib import colors
from django.utils import timezone
import logging

logger = logging.getLogger(__name__)

PAYMENT_METHOD_LABELS = {
    'mpesa_stk': 'M-Pesa',
    'paystack_card': 'Card (Paystack)',
    'cash': 'Cash',
}


def build_receipt_data(receipt):
    """Flatten a Receipt with its order and invoice into the dict the renderer expects."""
    order = receipt.order
    invoice = receipt.invoice
    customer = order.customer
    customer_name = (customer.get_full_name() or customer.get_username()) if customer else None
    return {
        'receipt_number': receipt.receipt_number,
        'receipt_date': receipt.issued_at,
        'order_number': order.order_number,
        'invoice_number': invoice.invoice_number,
        'customer_name': customer_name,
        'items': [
            {
                'description': item.title,
                'quantity': item.quantity,
                'unit_price': item.unit_price,
                'total': item.line_total,
            }
            for item in order.items.all()
        ],
        'line_items': invoice.line_items or [],
        'discounts': invoice.discounts,
        'total': receipt.amount_paid,
        'payment_method': PAYMENT_METHOD_LABELS.get(receipt.payment_method, receipt.payment_method),
        'currency': receipt.payment.currency if receipt.payment_id else 'KES',
    }


def generate_receipt_pdf(receipt_data):
    """
    Generate PDF for a receipt using reportlab.

    Args:
        receipt_data: dict from ``build_receipt_data``

    Returns:
        bytes: PDF document content
    """
    currency = receipt_data.get('currency', 'KES')
    try:
        buffer = BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4, topMargin=0.4*inch, bottomMargin=0.4*inch)
        elements = []
        styles = getSampleStyleSheet()

        title_style = ParagraphStyle(
            'ReceiptTitle',
            parent=styles['Heading1'],
            fontSize=20,
            textColor=colors.HexColor('#1a1a1a'),
            spaceAfter=5
        )
        elements.append(Paragraph("RECEIPT", title_style))
        elements.append(Spacer(1, 0.2*inch))

        issued = receipt_data.get('receipt_date') or timezone.now()
        details_data = [
            ['Receipt #:', receipt_data.get('receipt_number', 'N/A')],
            ['Order #:', receipt_data.get('order_number', 'N/A')],
            ['Invoice #:', receipt_data.get('invoice_number', 'N/A')],
            ['Date:', issued.strftime('%Y-%m-%d %H:%M:%S')],
        ]
        if receipt_data.get('customer_name'):
            details_data.append(['Customer:', receipt_data.get('customer_name')])

        details_table = Table(details_data, colWidths=[1.5*inch, 3.5*inch])
        details_table.setStyle(TableStyle([
            ('FONT', (0, 0), (-1, -1), 'Helvetica', 9),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
        ]))
        elements.append(details_table)
        elements.append(Spacer(1, 0.15*inch))

        items_data = [['Item', 'Qty', 'Price', 'Amount']]
        for item in receipt_data.get('items', []):
            items_data.append([
                item.get('description', ''),
                str(item.get('quantity', 1)),
                f"{currency} {item.get('unit_price', 0):.2f}",
                f"{currency} {item.get('total', 0):.2f}"
            ])

        items_table = Table(items_data, colWidths=[2.5*inch, 0.8*inch, 1.2*inch, 1.2*inch])
        items_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 9),
            ('FONTSIZE', (0, 1), (-1, -1), 8),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ]))
        elements.append(items_table)
        elements.append(Spacer(1, 0.1*inch))

        # Invoice lines already hold the subtotal and each non-zero fee
        totals_data = [[f"{line.get('label')}:", f"{currency} {line.get('amount')}"]
                       for line in receipt_data.get('line_items', [])]
        if receipt_data.get('discounts'):
            totals_data.append(['Discount:', f"-{currency} {receipt_data['discounts']:.2f}"])
        totals_data.append(['TOTAL PAID:', f"{currency} {receipt_data.get('total', 0):.2f}"])

        totals_table = Table(totals_data, colWidths=[3.5*inch, 1.5*inch])
        totals_table.setStyle(TableStyle([
            ('FONT', (0, 0), (-1, -1), 'Helvetica', 9),
            ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
            ('BACKGROUND', (0, -1), (-1, -1), colors.grey),
            ('TEXTCOLOR', (0, -1), (-1, -1), colors.whitesmoke),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, -1), (-1, -1), 10),
        ]))
        elements.append(totals_table)

        if receipt_data.get('payment_method'):
            elements.append(Spacer(1, 0.15*inch))
            payment_style = ParagraphStyle(
                'PaymentStyle',
                parent=styles['Normal'],
                fontSize=9,
                textColor=colors.grey
            )
            elements.append(Paragraph(f"<b>Payment Method:</b> {receipt_data.get('payment_method')}", payment_style))

        elements.append(Spacer(1, 0.2*inch))
        footer_style = ParagraphStyle(
            'Footer',
            parent=styles['Normal'],
            fontSize=8,
            textColor=colors.grey,
            alignment=1  # Center
        )
        elements.append(Paragraph("Thank you for your order!", footer_style))

        doc.build(elements)
        pdf_bytes = buffer.getvalue()
        buffer.close()

        logger.info(f"Generated receipt PDF for receipt {receipt_data.get('receipt_number')}")
        return pdf_bytes

    except Exception as e:
        logger.error(f"Error generating receipt PDF: {str(e)}", exc_info=True)
        raise
