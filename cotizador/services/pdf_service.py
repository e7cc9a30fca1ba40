"""PDF rendering of quotes (current version or any archived one)."""

from datetime import datetime
from io import BytesIO
from typing import Dict, Any, List

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from sqlalchemy.orm import Session

from cotizador.services.quote_service import get_customer_data, get_quote
from cotizador.services.totals_service import compute_totals
from cotizador.services.version_service import get_version_content
from cotizador.utils.formatters import date_ar, money_ar_2, num_ar


def _render_quote_pdf(header: Dict[str, Any], items: List[Dict[str, Any]], totals: Dict[str, Any],
                      business_info: Dict[str, Any]) -> BytesIO:
    """
    Internal PDF rendering engine for quotes.
    Shared by the live quote and archived versions.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=0.6*inch,
        leftMargin=0.6*inch,
        topMargin=0.75*inch,
        bottomMargin=0.75*inch
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#2C3E50'),
        spaceAfter=12,
        alignment=TA_CENTER,
        fontName='Helvetica-Bold'
    )

    header_style = ParagraphStyle(
        'CustomHeader',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#7F8C8D'),
        alignment=TA_CENTER,
        spaceAfter=6
    )

    # 1. Title and Business Header
    elements.append(Paragraph("COTIZACIÓN", title_style))

    if business_info.get('name'):
        elements.append(Paragraph(f"<b>{business_info['name']}</b>", header_style))

    if business_info.get('address'):
        elements.append(Paragraph(business_info['address'], header_style))

    contact_parts = []
    if business_info.get('phone'):
        contact_parts.append(f"Tel: {business_info['phone']}")
    if business_info.get('email'):
        contact_parts.append(f"Email: {business_info['email']}")

    if contact_parts:
        elements.append(Paragraph(" | ".join(contact_parts), header_style))

    elements.append(Spacer(1, 0.3*inch))

    # 2. Quote Metadata Table
    issued = business_info.get('issued_at') or datetime.now()
    quote_info_data = [
        ['Cotización N°:', business_info.get('quote_number', '-')],
        ['Versión:', str(business_info.get('version', '-'))],
        ['Fecha Emisión:', date_ar(issued)],
    ]

    valid_until = header.get('valid_until')
    if valid_until:
        quote_info_data.append(['Válido Hasta:', date_ar(valid_until)])

    if header.get('customer_name') or header.get('customer_code'):
        customer = header.get('customer_name') or ''
        if header.get('customer_code'):
            customer = f"{header['customer_code']} - {customer}".rstrip(' -')
        quote_info_data.append(['Cliente:', customer])

    if header.get('sales_condition'):
        quote_info_data.append(['Condición de Venta:', header['sales_condition']])

    if header.get('price_list'):
        quote_info_data.append(['Lista de Precios:', header['price_list']])

    quote_info_table = Table(quote_info_data, colWidths=[2*inch, 3.5*inch])
    quote_info_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
        ('ALIGN', (1, 0), (1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))

    elements.append(quote_info_table)
    elements.append(Spacer(1, 0.3*inch))

    # 3. Items Table
    table_data = [['Código', 'Descripción', 'Cant.', 'Precio Unit.', 'Bonif. %', 'Subtotal']]

    for item in sorted(items, key=lambda i: i.get('order') or 0):
        line = compute_totals(None, [item])
        table_data.append([
            item.get('code', ''),
            Paragraph(item.get('description') or '', styles['Normal']),
            num_ar(item.get('quantity')),
            f"${money_ar_2(item.get('unit_price'))}",
            num_ar(item.get('discount_pct') or 0),
            f"${money_ar_2(line['net'])}"
        ])

    items_table = Table(table_data, colWidths=[0.9*inch, 2.6*inch, 0.6*inch, 1*inch, 0.7*inch, 1.1*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#3498DB')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 12),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('ALIGN', (2, 1), (2, -1), 'CENTER'),
        ('ALIGN', (3, 1), (3, -1), 'RIGHT'),
        ('ALIGN', (4, 1), (4, -1), 'CENTER'),
        ('ALIGN', (5, 1), (5, -1), 'RIGHT'),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#BDC3C7')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#ECF0F1')]),
    ]))

    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # 4. Totals
    totals_data = [['Subtotal neto:', f"${money_ar_2(totals['gross'] - totals['item_discount'])}"]]
    if totals['general_discount_pct']:
        totals_data.append([f"Bonificación general ({num_ar(totals['general_discount_pct'])}%):",
                            f"-${money_ar_2(totals['gross'] - totals['item_discount'] - totals['net'])}"])
    totals_data.append(['IVA:', f"${money_ar_2(totals['tax'])}"])
    for withholding in totals['withholdings']:
        label = withholding.get('description') or withholding.get('code')
        totals_data.append([f"{label} ({num_ar(withholding['rate'])}%):", f"${money_ar_2(withholding['amount'])}"])

    totals_table = Table(totals_data, colWidths=[5.7*inch, 1.2*inch])
    totals_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#34495E')),
    ]))
    elements.append(totals_table)

    total_table = Table([['TOTAL:', f"${money_ar_2(totals['total'])}"]], colWidths=[5.7*inch, 1.2*inch])
    total_table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (0, 0), 'RIGHT'),
        ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
        ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 14),
        ('TEXTCOLOR', (0, 0), (-1, -1), colors.HexColor('#27AE60')),
        ('BACKGROUND', (0, 0), (-1, -1), colors.HexColor('#E8F8F5')),
        ('BOX', (0, 0), (-1, -1), 2, colors.HexColor('#27AE60')),
    ]))

    elements.append(total_table)
    elements.append(Spacer(1, 0.4*inch))

    # 5. Footer
    footer_style = ParagraphStyle('Footer', parent=styles['Normal'], fontSize=9, textColor=colors.HexColor('#95A5A6'), alignment=TA_CENTER)
    footer_text = "<b>IMPORTANTE:</b><br/>Precios sujetos a modificación sin previo aviso.<br/><i>No constituye factura.</i>"

    if header.get('notes'):
        footer_text += f"<br/><br/><b>Notas:</b> {header['notes']}"

    elements.append(Paragraph(footer_text, footer_style))

    doc.build(elements)
    buffer.seek(0)
    return buffer


def generate_quote_pdf(session: Session, quote_id: int, business_info: Dict[str, Any], version: int = None) -> BytesIO:
    """Generate the PDF of a quote's live version, or of ``version`` when given."""
    quote = get_quote(session, quote_id)
    version = version or quote.version
    header, items = get_version_content(session, quote, version)

    customer = get_customer_data(session, header.get('customer_code'))
    totals = compute_totals(header, items, customer)

    info = business_info.copy()
    info.update({
        'quote_number': quote.quote_number,
        'version': version,
        'issued_at': quote.created_at,
    })
    return _render_quote_pdf(header, items, totals, info)
