"""
PDF Report Generator for Detailed Estimates
Renders a priced estimate as a printable, itemized proposal
"""

from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.enums import TA_LEFT
from datetime import datetime
from io import BytesIO
from typing import Optional
from xml.sax.saxutils import escape
import os

from roofbid.config import Settings
from roofbid.models.estimate import PricedEstimate
from roofbid.pricing_engine import group_line_items
from roofbid.utils import format_currency, format_quantity, format_quote_range


class EstimatePDFGenerator:
    """Generates itemized PDF proposals for priced estimates"""

    PRIMARY_RED = colors.HexColor('#8B3A3A')
    LIGHT_GREY = colors.HexColor('#F2F2F2')
    BLACK = colors.black

    def __init__(self, estimate: PricedEstimate, company: Optional[Settings] = None):
        self.estimate = estimate
        self.company = company or Settings()

        created = estimate.created_at[:10].replace('-', '') if estimate.created_at else datetime.now().strftime("%Y%m%d")
        suffix = (estimate.id or "PREVIEW")[:6].upper()
        self.reference_number = f"EST-{created}-{suffix}"

    def _document(self, target) -> SimpleDocTemplate:
        return SimpleDocTemplate(
            target,
            pagesize=letter,
            rightMargin=0.5*inch,
            leftMargin=0.5*inch,
            topMargin=0.4*inch,
            bottomMargin=0.4*inch,
            title=f"Estimate {self.reference_number}",
        )

    def _story(self):
        story = []
        story.extend(self._build_header())
        story.extend(self._build_metadata())
        story.extend(self._build_line_items())
        story.extend(self._build_totals())
        story.extend(self._build_price_band())
        return story

    def generate(self, output_path: str) -> str:
        """
        Generate PDF file
        """
        dir_path = os.path.dirname(output_path)
        if dir_path:
            os.makedirs(dir_path, exist_ok=True)

        self._document(output_path).build(self._story())
        return output_path

    def generate_bytes(self) -> bytes:
        buffer = BytesIO()
        self._document(buffer).build(self._story())
        return buffer.getvalue()

    def _build_header(self):
        elements = []

        header_table = Table([[self.company.company_name, 'Roofing Estimate']], colWidths=[4*inch, 3*inch])
        header_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, -1), self.PRIMARY_RED),
            ('TEXTCOLOR', (0, 0), (-1, -1), colors.white),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (0, 0), 16),
            ('FONTSIZE', (1, 0), (1, 0), 18),
            ('ALIGN', (0, 0), (0, 0), 'LEFT'),
            ('ALIGN', (1, 0), (1, 0), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('TOPPADDING', (0, 0), (-1, -1), 12),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 12),
            ('LEFTPADDING', (0, 0), (-1, -1), 12),
            ('RIGHTPADDING', (0, 0), (-1, -1), 12),
        ]))
        elements.append(header_table)

        contact_table = Table([[f"{self.company.company_phone} | {self.company.company_email}"]],
                              colWidths=[7*inch])
        contact_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, -1), self.PRIMARY_RED),
            ('TEXTCOLOR', (0, 0), (-1, -1), colors.white),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
            ('LEFTPADDING', (0, 0), (-1, -1), 12),
        ]))
        elements.append(contact_table)
        elements.append(Spacer(1, 0.15*inch))

        return elements

    def _build_metadata(self):
        """Reference number, lead and validity dates"""
        elements = []

        date_str = self.estimate.created_at[:10] if self.estimate.created_at else datetime.now().strftime("%Y-%m-%d")
        rows = [
            ['Reference Number', self.reference_number, 'Date', date_str],
            ['Lead', self.estimate.lead_id or 'N/A', 'Valid Until',
             self.estimate.valid_until[:10] if self.estimate.valid_until else 'N/A'],
            ['Package', self.estimate.name or self.estimate.macro_name, 'Status', self.estimate.status.value.title()],
        ]

        metadata_table = Table(rows, colWidths=[1.3*inch, 2.4*inch, 1.0*inch, 2.3*inch])
        metadata_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (0, -1), self.PRIMARY_RED),
            ('BACKGROUND', (2, 0), (2, -1), self.PRIMARY_RED),
            ('TEXTCOLOR', (0, 0), (0, -1), colors.white),
            ('TEXTCOLOR', (2, 0), (2, -1), colors.white),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTNAME', (2, 0), (2, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('TOPPADDING', (0, 0), (-1, -1), 5),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ]))
        elements.append(metadata_table)
        elements.append(Spacer(1, 0.15*inch))

        return elements

    def _build_line_items(self):
        """Included lines, one shaded heading row per group"""
        elements = []

        table_data = [['Item', 'Description', 'Quantity', 'Unit Cost', 'Total']]
        group_rows = []

        for group, lines in group_line_items(self.estimate.included_items).items():
            group_rows.append(len(table_data))
            table_data.append([group.replace('_', ' ').title(), '', '', '', ''])
            for line in lines:
                unit_cost = line.material_unit_cost + line.labor_unit_cost + line.equipment_unit_cost
                table_data.append([
                    line.item_code,
                    Paragraph(escape(line.name), self._cell_style()),
                    format_quantity(line.quantity_with_waste, line.unit_type),
                    format_currency(unit_cost),
                    format_currency(line.line_total),
                ])

        items_table = Table(table_data, colWidths=[1.1*inch, 2.6*inch, 1.1*inch, 1.0*inch, 1.2*inch],
                            repeatRows=1)
        style = [
            ('BACKGROUND', (0, 0), (-1, 0), self.PRIMARY_RED),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('ALIGN', (2, 0), (2, -1), 'CENTER'),
            ('ALIGN', (3, 0), (4, -1), 'RIGHT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('TOPPADDING', (0, 0), (-1, -1), 4),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ]
        for row in group_rows:
            style.extend([
                ('SPAN', (0, row), (-1, row)),
                ('BACKGROUND', (0, row), (-1, row), self.LIGHT_GREY),
                ('FONTNAME', (0, row), (-1, row), 'Helvetica-Bold'),
            ])
        items_table.setStyle(TableStyle(style))

        elements.append(items_table)
        elements.append(Spacer(1, 0.15*inch))

        return elements

    def _build_totals(self):
        estimate = self.estimate
        rows = [
            ['Materials', format_currency(estimate.total_material)],
            ['Labor', format_currency(estimate.total_labor)],
            ['Equipment', format_currency(estimate.total_equipment)],
            ['Subtotal', format_currency(estimate.subtotal)],
            [f'Overhead ({estimate.overhead_percent:g}%)', format_currency(estimate.overhead_amount)],
            [f'Profit ({estimate.profit_percent:g}%)', format_currency(estimate.profit_amount)],
            [f'Tax ({estimate.tax_percent:g}%)', format_currency(estimate.tax_amount)],
            ['Total Estimate', format_currency(estimate.price_likely)],
        ]

        totals_table = Table(rows, colWidths=[2.0*inch, 1.3*inch], hAlign='RIGHT')
        totals_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
            ('FONTSIZE', (0, 0), (-1, -2), 9),
            ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
            ('LINEABOVE', (0, 3), (-1, 3), 0.5, colors.grey),
            ('BACKGROUND', (0, -1), (-1, -1), self.PRIMARY_RED),
            ('TEXTCOLOR', (0, -1), (-1, -1), colors.white),
            ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, -1), (-1, -1), 10),
            ('TOPPADDING', (0, 0), (-1, -1), 4),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ]))
        return [totals_table, Spacer(1, 0.15*inch)]

    def _build_price_band(self):
        styles = getSampleStyleSheet()
        note_style = ParagraphStyle(
            'PriceBand',
            parent=styles['Normal'],
            fontSize=9,
            textColor=self.BLACK,
            alignment=TA_LEFT,
            leading=11,
        )

        band = format_quote_range(self.estimate.price_low, self.estimate.price_high)
        text = (
            f"<b>Expected price range:</b> {band}. Final pricing may change after a "
            f"complete inspection of the roof deck and any hidden damage."
        )
        elements = [Paragraph(text, note_style)]

        if self.estimate.warnings:
            elements.append(Spacer(1, 0.08*inch))
            elements.append(Paragraph(
                "<b>Notes:</b> " + escape("; ".join(self.estimate.warnings)), note_style))

        return elements

    def _cell_style(self) -> ParagraphStyle:
        styles = getSampleStyleSheet()
        return ParagraphStyle('Cell', parent=styles['Normal'], fontSize=8, leading=10)
