"""
Policy document generator

Renders the two PDFs issued with every policy:
- Certificate of Motor Insurance (single A4 page, underwriter header,
  numbered statutory rows, exclusions, signature and regulatory footer)
- Statement of Fact & Declaration (proposal) with the customer's facts and the
  eligibility declarations they agreed to at checkout
"""

import math
import os
from datetime import datetime, timedelta
from io import BytesIO
from typing import Any, Optional
from xml.sax.saxutils import escape
from zoneinfo import ZoneInfo

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, Image, HRFlowable, KeepTogether

from core.config import APP_NAME, SIGNATURE_IMAGE_PATH, logger
from utils.validation import parse_iso_datetime

UK_TZ = ZoneInfo("Europe/London")

INSURER_NAME = "ACCELERANT INSURANCE UK LIMITED"
SIGNATORY_NAME = "Emma Huntington"

INK = colors.HexColor('#111827')
SLATE = colors.HexColor('#334155')
MUTED = colors.HexColor('#64748b')
RULE = colors.HexColor('#e2e8f0')
BRAND = colors.HexColor('#0f172a')

REGULATORY_CERTIFY = (
    "We hereby certify that the policy satisfies the requirements of the relevant law applicable in Great Britain, "
    "Northern Ireland, the Isle of Man, and the islands of Alderney, Guernsey and Jersey."
)
REGULATORY_GIBRALTAR = (
    f"{APP_NAME} Limited is authorised by the Gibraltar Financial Services Commission to carry on insurance business "
    "under the Financial Services Act 2019 and Financial Services Regulations 2020, registered address "
    "5/5 Crutchett's Ramp, Gibraltar."
)
REGULATORY_FCA = (
    "Details about our regulation by the Financial Conduct Authority and Prudential Regulation Authority are "
    "available on request."
)
REGULATORY_REGISTERED = (
    "Registered in England and Wales as ACCELERANT INSURANCE UK LIMITED. Reg. No. 03326800. Registered Address: One, "
    "Fleet Place, London, England, EC4M 7WS. Authorised and regulated by the Financial Conduct Authority (207658)."
)

CERTIFICATE_EXCLUSIONS = [
    "Use for hiring commercial travelling or use for any purpose in connection with the Motor Trade.",
    "The insurance does not cover use for racing, pacemaking, competition, rallies, trials or speedtesting.",
    "Use to secure the release of a motor vehicle, other than the vehicle identified above by its registration "
    "mark, which has been seized by, or on behalf of any Government or public authority.",
]

DECLARATION_DRIVER = [
    ("a)", "Are aged between 21 and 75 years of age;"),
    ("b)", "Hold a Full United Kingdom driving licence (unless cover is agreed for another licence type);"),
    ("c)", "Have been a permanent UK resident for the last 12 months (1 year);"),
    ("d)", "Are not aware of any pending prosecution or Police enquiry for any motoring offences;"),
    ("e)", "Have no more than six (6) penalty points for motoring convictions in the last three (3) years;"),
    ("f)", "Have not had any driving disqualifications in the last three (3) years;"),
    ("g)", "Have had no more than one (1) fault claim in the last three (3) years;"),
    ("h)", "Do not have any criminal convictions;"),
    ("i)", "Have not had a motor insurance policy cancelled, voided, refused, a premium increased, or had an insurer "
           "refuse to pay a claim;"),
    ("j)", "Do not reside at any of the following: Squat, Static Caravan, Caravan, Barge, House Boat or a No fixed "
           "Abode address;"),
    ("k)", "Have no additional occupations including part-time jobs outside of that disclosed for the purposes of "
           "obtaining this insurance;"),
    ("l)", "Are NOT Unemployed or a Professional Sportsperson; and do not have an occupation connected to Couriers, "
           "Entertainment Industry, Fast Food Delivery, or Parcel Delivery."),
]

DECLARATION_VEHICLE = [
    ("a)", "Will only be used by the main driver (or main driver and one additional driver where permitted)."),
    ("b)", "Will only be used for social, domestic and pleasure, or in person by you in connection with your work "
           "or business;"),
    ("c)", "Will not be used for hire and reward, courier/delivery, racing, pace-making, speed testing, competition, "
           "rallies, trials, track days, or use on the Nürburgring Nordschleife;"),
    ("d)", "Is not impounded by the police or any government or local authority;"),
    ("e)", "Will not be used to carry hazardous, corrosive or explosive goods;"),
    ("f)", "Has not been modified (except modifications for disabled drivers or manufacturer optional extras such "
           "as alloy wheels);"),
    ("g)", "Has no more than seven (7) seats and is right-hand drive only;"),
    ("h)", "Has a valid MOT certificate (if required by law), and is not SORN registered;"),
    ("i)", "Has not been previously recorded as a Category A or B insurance total loss;"),
    ("j)", "Is not Q plated;"),
    ("k)", "Is registered in Great Britain, Northern Ireland or the Isle of Man;"),
    ("l)", "Will be in the United Kingdom (UK) at the start of the policy and will not be exported during the "
           "policy period;"),
    ("m)", "Has a current market value not exceeding £65,000 (minimum vehicle value £1,000)."),
]

DECLARATION_ADDITIONAL = [
    ("3.", "I am aware this temporary insurance policy cannot be used for Hire or Loan Vehicles (e.g. rentals, "
           "credit hire, or accident management/recovery vehicles)."),
    ("4.", "I declare the Certificate of Motor Insurance and any other document will not be used as evidence of "
           "insurance for the release of a vehicle impounded or confiscated by the Police or Local Authority."),
    ("5.", "I am aware that driving of other cars is not permitted under this policy."),
    ("6.", "I am aware that no amendments, alterations or changes can be made to this policy or Certificate of "
           "Motor Insurance once issued."),
    ("7.", "I have read and agree that the above conditions are met and that I have taken reasonable care not to "
           "make any misrepresentation of the information I have provided."),
]


# ---- formatting helpers ----------------------------------------------------

def _to_uk(value: Any) -> Optional[datetime]:
    dt = parse_iso_datetime(value)
    return dt.astimezone(UK_TZ) if dt else None


def format_uk_datetime(value: Any, style: str = "proposal") -> str:
    """Format an instant in UK local time.

    style="certificate" -> "14:05 hours - 3 March 2026"
    style="proposal"    -> "3 March 2026 at 14:05"
    Unparseable input is returned as given.
    """
    d = _to_uk(value)
    if d is None:
        return str(value or "")
    date_part = f"{d.day} {d.strftime('%B')} {d.year}"
    time_part = d.strftime("%H:%M")
    if style == "certificate":
        return f"{time_part} hours - {date_part}"
    return f"{date_part} at {time_part}"


def format_uk_date(value: Any) -> str:
    # Dates of birth are calendar dates; keep them in UTC so midnight never shifts a day
    d = parse_iso_datetime(value)
    if d is None:
        return str(value or "")
    return f"{d.day} {d.strftime('%B')} {d.year}"


def duration_human(ms: Any) -> str:
    try:
        ms = float(ms or 0)
    except (TypeError, ValueError):
        return "—"
    if ms <= 0:
        return "—"

    minute = 60 * 1000
    hour = 60 * minute
    day = 24 * hour

    mins = math.ceil(ms / minute)
    hours, rem_mins = divmod(mins, 60)

    if ms < hour:
        return "1 minute" if mins == 1 else f"{mins} minutes"
    if ms < day:
        label = "1 hour" if hours == 1 else f"{hours} hours"
        return f"{label} {rem_mins} minutes" if rem_mins else label

    days = math.ceil(ms / day)
    return "1 day" if days == 1 else f"{days} days"


def vehicle_description(make: Optional[str] = None, model: Optional[str] = None, year: Any = None) -> str:
    parts = [str(p).strip() for p in (make, model, year) if p not in (None, "") and str(p).strip()]
    return " ".join(parts) or "—"


def _p(text: Any, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(str(text if text not in (None, "") else "—")), style)


def _signature_flowable(path: Optional[str], width: float, height: float):
    path = path or SIGNATURE_IMAGE_PATH
    if path and os.path.isfile(path):
        img = Image(path, width=width, height=height, kind="proportional")
        img.hAlign = "LEFT"
        return img
    logger.debug(f"[pdf.signature] no signature image at {path}")
    return Spacer(1, height)


# ---- certificate -----------------------------------------------------------

def _certificate_page(canvas, doc):
    """Outer border and the faint underwriter watermark."""
    width, height = A4
    canvas.saveState()
    canvas.setStrokeColor(INK)
    canvas.setLineWidth(1)
    canvas.rect(8 * mm, 8 * mm, width - 16 * mm, height - 16 * mm)

    canvas.setFillColor(INK)
    canvas.setFillAlpha(0.06)
    canvas.setFont("Helvetica-Bold", 10)
    canvas.translate(width / 2, height / 2)
    canvas.rotate(30)
    for row in range(-22, 23):
        canvas.drawString(-width, row * 14 * mm / 2, "ACCELERANT  " * 16)
    canvas.restoreState()


def generate_certificate_pdf(
    certificate_number: str,
    vrm: str,
    policyholder_name: str,
    start_at: Any,
    end_at: Any,
    make: Optional[str] = None,
    model: Optional[str] = None,
    year: Any = None,
    policy_number: Optional[str] = None,
    signature_path: Optional[str] = None,
) -> bytes:
    """
    Generate the Certificate of Motor Insurance.

    Returns the PDF as bytes.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=14 * mm,
        leftMargin=14 * mm,
        topMargin=14 * mm,
        bottomMargin=12 * mm,
        title=f"Certificate - {certificate_number}",
        author=INSURER_NAME,
    )

    styles = getSampleStyleSheet()
    company_style = ParagraphStyle('CertCompany', parent=styles['Normal'], fontName='Helvetica-Bold',
                                   fontSize=11.2, leading=14, alignment=TA_CENTER, textColor=INK)
    title_style = ParagraphStyle('CertTitle', parent=company_style, fontSize=11)
    cert_no_style = ParagraphStyle('CertNo', parent=styles['Normal'], fontSize=9, leading=12,
                                   alignment=TA_RIGHT, textColor=INK)
    label_style = ParagraphStyle('CertLabel', parent=styles['Normal'], fontSize=9.5, leading=12, textColor=INK)
    value_style = ParagraphStyle('CertValue', parent=label_style, fontSize=10)
    strong_style = ParagraphStyle('CertStrong', parent=value_style, fontName='Helvetica-Bold')
    small_style = ParagraphStyle('CertSmall', parent=styles['Normal'], fontSize=9, leading=11.5, textColor=INK)
    note_style = ParagraphStyle('CertNote', parent=small_style, fontSize=8.5, leading=11)
    legal_style = ParagraphStyle('CertLegal', parent=styles['Normal'], fontSize=7.6, leading=9.5,
                                 alignment=TA_CENTER, textColor=INK)

    story = []

    # Header
    cert_no = Paragraph(f"Certificate Number:<br/><b>{escape(certificate_number)}</b>", cert_no_style)
    header = Table(
        [[_p(APP_NAME, strong_style),
          [Paragraph(INSURER_NAME, company_style), Paragraph("CERTIFICATE OF MOTOR INSURANCE", title_style)],
          cert_no]],
        colWidths=[40 * mm, 100 * mm, 42 * mm],
    )
    header.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
    ]))
    story.append(header)
    story.append(HRFlowable(width="100%", thickness=1, color=INK, spaceBefore=6, spaceAfter=8))

    # Numbered statutory rows
    rows = [
        ["1",
         [_p("a) Registration Mark of Vehicle", label_style),
          _p("b) Any vehicle supplied to the Policyholder under an agreement between Accelerant Insurance UK "
             "Limited and a repairer, whilst the vehicle shown in (a) above is being repaired", label_style)],
         [_p(vrm, strong_style), _p("Not applicable unless otherwise stated.", value_style)]],
        ["2", _p("a) Description of Vehicle", label_style), _p(vehicle_description(make, model, year), strong_style)],
        ["3", _p("a) Name of Policyholder", label_style), _p(policyholder_name, strong_style)],
        ["4",
         _p("Effective time and date of the commencement of insurance for the purposes of the relevant law:",
            label_style),
         _p(format_uk_datetime(start_at, style="certificate"), strong_style)],
        ["5", _p("Date of expiry of insurance:", label_style),
         _p(format_uk_datetime(end_at, style="certificate"), strong_style)],
        ["6",
         _p("Persons or classes of persons entitled to drive (provided that the person driving holds a licence to "
            "drive the vehicle or has held and is not prevented from holding such a licence):", label_style),
         _p("The Policyholder", strong_style)],
        ["7", _p("Limitations as to use subject to the exclusions below:", label_style),
         _p("Use for social domestic and pleasure purposes and by the Policyholder in person in connection with "
            "his/her business or profession.", strong_style)],
    ]
    body = Table(rows, colWidths=[8 * mm, 100 * mm, 74 * mm])
    body.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (0, -1), 10),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('BOX', (0, 0), (-1, -1), 1, INK),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    story.append(body)
    story.append(Spacer(1, 8))

    story.append(_p("Exclusions", strong_style))
    for line in CERTIFICATE_EXCLUSIONS:
        story.append(Paragraph(f"• {escape(line)}", small_style))
    story.append(HRFlowable(width="100%", thickness=1, color=INK, spaceBefore=8, spaceAfter=8))

    # Footer: certification, signature, notes
    story.append(Paragraph(
        "I hereby certify that the Insurance Policy to which this Certificate relates satisfies the requirements "
        "of the relevant Law applicable in Great Britain, Northern Ireland, the Isle of Man, and the islands of "
        "Alderney, Guernsey and Jersey.", small_style))
    story.append(Spacer(1, 4))
    story.append(Paragraph("<i>Underwritten by Accelerant Insurance UK Limited - Authorised Insurers</i>", small_style))
    story.append(Spacer(1, 6))

    signature = [
        _signature_flowable(signature_path, 70 * mm, 20 * mm),
        _p(SIGNATORY_NAME, strong_style),
        _p("for the Authorised Insurers", small_style),
    ]
    notes = Table([[[
        Paragraph("<b>NOTE:</b>", note_style),
        Paragraph("For full details of the insurance cover reference should be made to the policy.", note_style),
        Spacer(1, 3),
        Paragraph("<b>ADVICE TO THIRD PARTIES:</b> Nothing contained in this Certificate affects your right as a "
                  "third party to make a claim.", note_style),
        Spacer(1, 3),
        Paragraph("<b>WARNING:</b> This certificate has been prepared using a laser printer and is not valid if "
                  "altered in any way.", note_style),
    ]]], colWidths=[84 * mm])
    notes.setStyle(TableStyle([('BOX', (0, 0), (-1, -1), 1, INK)]))

    sig_row = Table([[signature, notes]], colWidths=[92 * mm, 90 * mm])
    sig_row.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'BOTTOM'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
    ]))
    story.append(KeepTogether([sig_row]))
    story.append(Spacer(1, 8))

    story.append(Paragraph(escape(" ".join([
        REGULATORY_CERTIFY, REGULATORY_GIBRALTAR, REGULATORY_FCA, REGULATORY_REGISTERED,
    ])), legal_style))
    if policy_number:
        story.append(Spacer(1, 4))
        story.append(Paragraph(f"Policy number: {escape(policy_number)}", legal_style))

    doc.build(story, onFirstPage=_certificate_page, onLaterPages=_certificate_page)

    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


# ---- statement of fact (proposal) -----------------------------------------

def _proposal_page_factory(signature_path: Optional[str]):
    def _draw(canvas, doc):
        width, height = A4
        canvas.saveState()

        # Header band
        canvas.setFillColor(BRAND)
        canvas.rect(0, height - 22 * mm, width, 22 * mm, stroke=0, fill=1)
        canvas.setFillColor(colors.white)
        canvas.setFont("Helvetica-Bold", 16)
        canvas.drawString(12 * mm, height - 14 * mm, APP_NAME)
        canvas.setFont("Helvetica", 8.8)
        canvas.drawRightString(width - 12 * mm, height - 10 * mm, "PROPOSAL")
        canvas.setFont("Helvetica-Bold", 10.2)
        canvas.drawRightString(width - 12 * mm, height - 15 * mm, "Statement of Fact & Declaration")

        # Footer
        canvas.setStrokeColor(RULE)
        canvas.line(12 * mm, 40 * mm, width - 12 * mm, 40 * mm)
        footer_style = ParagraphStyle('FooterSmall', fontName='Helvetica', fontSize=7.2, leading=8.8, textColor=MUTED)
        col_w = (width - 30 * mm) / 2
        left = Paragraph(escape(f"{REGULATORY_CERTIFY} {REGULATORY_GIBRALTAR}"), footer_style)
        left.wrapOn(canvas, col_w, 30 * mm)
        left.drawOn(canvas, 12 * mm, 38 * mm - left.height)

        right = Paragraph(escape(REGULATORY_FCA), footer_style)
        right.wrapOn(canvas, col_w, 20 * mm)
        right.drawOn(canvas, 18 * mm + col_w, 38 * mm - right.height)

        sig = signature_path or SIGNATURE_IMAGE_PATH
        if sig and os.path.isfile(sig):
            canvas.drawImage(sig, 18 * mm + col_w, 20 * mm, width=38 * mm, height=9 * mm,
                             preserveAspectRatio=True, mask='auto')
        canvas.setFont("Helvetica-Bold", 7.4)
        canvas.setFillColor(BRAND)
        canvas.drawString(18 * mm + col_w, 17 * mm, f"{SIGNATORY_NAME}, for the Authorised Insurers")

        reg = Paragraph(escape(REGULATORY_REGISTERED), footer_style)
        reg.wrapOn(canvas, width - 24 * mm, 12 * mm)
        reg.drawOn(canvas, 12 * mm, 14 * mm - reg.height)

        canvas.setFont("Helvetica", 7)
        canvas.setFillColor(MUTED)
        canvas.drawRightString(width - 12 * mm, 4 * mm, f"Page {doc.page}")
        canvas.restoreState()
    return _draw


def generate_proposal_pdf(
    policy_number: str,
    vrm: str,
    start_at: Any,
    end_at: Any,
    duration_ms: Any,
    full_name: str,
    dob: Any,
    email: str,
    address: str,
    licence_type: str,
    make: Optional[str] = None,
    model: Optional[str] = None,
    year: Any = None,
    created_at: Any = None,
    issued_by: str = "Accelerant",
    signature_path: Optional[str] = None,
) -> bytes:
    """
    Generate the Statement of Fact & Declaration for a policy.

    Returns the PDF as bytes.
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=12 * mm,
        leftMargin=12 * mm,
        topMargin=28 * mm,
        bottomMargin=46 * mm,
        title=f"Statement of Fact - {policy_number}",
        author=APP_NAME,
    )

    styles = getSampleStyleSheet()
    h1 = ParagraphStyle('SofTitle', parent=styles['Heading1'], fontName='Helvetica-Bold', fontSize=13.2,
                        leading=16, spaceAfter=2, textColor=BRAND)
    sub = ParagraphStyle('SofSub', parent=styles['Normal'], fontSize=9.1, leading=12, textColor=colors.HexColor('#475569'),
                         spaceAfter=8)
    section = ParagraphStyle('SofSection', parent=styles['Normal'], fontName='Helvetica-Bold', fontSize=10,
                             leading=13, spaceBefore=6, spaceAfter=4, textColor=BRAND)
    meta = ParagraphStyle('SofMeta', parent=styles['Normal'], fontSize=8.5, leading=11.5, textColor=colors.HexColor('#475569'))
    para = ParagraphStyle('SofPara', parent=styles['Normal'], fontSize=8.6, leading=10.8, textColor=SLATE)
    key_style = ParagraphStyle('SofKey', parent=para, fontName='Helvetica-Bold', textColor=BRAND)

    vehicle = " ".join(p for p in (make, model) if p).strip()
    vehicle_line = vrm + (f" • {vehicle}" if vehicle else "") + (f" • {year}" if year else "")

    def kv_table(rows):
        data = [[_p(k, meta), _p(v, key_style)] for k, v in rows]
        t = Table(data, colWidths=[28 * mm, 56 * mm])
        t.setStyle(TableStyle([
            ('BOX', (0, 0), (-1, -1), 0.75, RULE),
            ('LINEBELOW', (0, 0), (-1, -2), 0.75, RULE),
            ('BACKGROUND', (0, 0), (0, -1), colors.HexColor('#f8fafc')),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('TOPPADDING', (0, 0), (-1, -1), 3),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
        ]))
        return t

    def items(entries, width):
        data = [[_p(k, key_style), _p(text, para)] for k, text in entries]
        t = Table(data, colWidths=[8 * mm, width - 8 * mm])
        t.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LEFTPADDING', (0, 0), (-1, -1), 0),
            ('TOPPADDING', (0, 0), (-1, -1), 1),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 2),
        ]))
        return t

    left = [
        Paragraph(f"Policy number: <b>{escape(policy_number)}</b>", meta),
        Paragraph(f"Vehicle: <b>{escape(vehicle_line)}</b>", meta),
        Paragraph(f"Start: <b>{escape(format_uk_datetime(start_at))}</b>", meta),
        Paragraph(f"End: <b>{escape(format_uk_datetime(end_at))}</b>", meta),
        Paragraph(f"Duration: <b>{escape(duration_human(duration_ms))}</b>", meta),
        Paragraph(f"Issued: <b>{escape(format_uk_datetime(created_at or datetime.now().astimezone()))}</b>", meta),
        Paragraph("Important", section),
        Paragraph("This Statement of Fact is a record of information given by you which has been used to assess the "
                  "risk and decide terms and conditions of your contract of insurance. You must check this document "
                  "and tell us straight away if any information is incorrect or incomplete.", para),
        Paragraph("Main driver", section),
        kv_table([
            ("Name", full_name),
            ("Email", email),
            ("Address", address),
            ("Date of birth", format_uk_date(dob)),
            ("Licence type", licence_type),
        ]),
        Paragraph("Vehicle details", section),
        kv_table([
            ("Registration", vrm),
            ("Make", make),
            ("Model", model),
            ("Year", year),
            ("Cover", "Temporary motor insurance"),
            ("Insurer", issued_by),
        ]),
    ]

    right = [
        Paragraph("Temporary Insurance Declaration", section),
        Paragraph(f"This is a copy of the declaration you agree to as part of purchasing insurance from {escape(APP_NAME)}. "
                  "You confirm you meet the assumptions and eligibility criteria below. Failure to meet these criteria "
                  "could invalidate your insurance. You must continue to meet them for the duration of the policy.",
                  para),
        Paragraph("1. I declare that I (and any named driver):", section),
        items(DECLARATION_DRIVER, 88 * mm),
    ]

    columns = Table([[left, right]], colWidths=[90 * mm, 96 * mm])
    columns.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (0, 0), 8),
    ]))

    story = [
        Paragraph("Statement of Fact", h1),
        Paragraph("Important: Please read carefully.", sub),
        columns,
        Spacer(1, 8),
        Paragraph("2. I declare that the vehicle:", section),
        items(DECLARATION_VEHICLE, 184 * mm),
        HRFlowable(width="100%", thickness=1, color=RULE, spaceBefore=6, spaceAfter=6),
        Paragraph("3. Additional confirmations:", section),
        items(DECLARATION_ADDITIONAL, 184 * mm),
    ]

    on_page = _proposal_page_factory(signature_path)
    doc.build(story, onFirstPage=on_page, onLaterPages=on_page)

    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


def default_window(hours: int = 24) -> tuple[str, str]:
    """ISO start/end pair starting now, used when render requests omit the cover window."""
    start = datetime.now().astimezone()
    end = start + timedelta(hours=hours)
    return start.isoformat(), end.isoformat()
