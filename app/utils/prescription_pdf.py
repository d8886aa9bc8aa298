# app/utils/prescription_pdf.py
"""
Prescription PDF generation.

Each page is rendered on its own with reportlab (one single-page PDF per
call), then the pages are merged in order with pypdf. Medication rows are
distributed over pages by app.utils.prescription_pagination.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from io import BytesIO
from typing import Any, Protocol, Sequence
from xml.sax.saxutils import escape

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4, A5
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import (
    HRFlowable,
    KeepInFrame,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from app.core.config import get_settings
from app.utils.datetime_utils import add_days, format_display_date, parse_iso_string, utc_now
from app.utils.prescription_pagination import MedicationPage, paginate_medications

logger = logging.getLogger(__name__)

PAGE_SIZES = {"A4": A4, "A5": A5}

DIGITAL_ISSUE_TEXT = "Doctor generated this prescription and issued digitally."
DEFAULT_ALLERGY_TEXT = "No allergy reported yet"
DEFAULT_TIMING = "After food"

# Share of the page height kept free for the fixed footer
FOOTER_HEIGHT_RATIO = 0.22

LABEL_BACKGROUND = colors.HexColor("#d3d3d3")
VALUE_BACKGROUND = colors.HexColor("#f9f9f9")
TABLE_HEADER_BACKGROUND = colors.HexColor("#f0f0f0")
VALIDITY_BACKGROUND = colors.HexColor("#999999")


class RenderError(Exception):
    pass


class RenderTimeoutError(RenderError):
    pass


class PageRenderer(Protocol):
    def render_page(self, prescription_data: dict, page: MedicationPage, page_format: str) -> bytes:
        """Render one page of the prescription and return it as a single-page PDF."""
        ...


def normalize_page_format(page_format: str | None) -> str:
    """Return "A4" or "A5"; unknown formats fall back to the configured default."""
    fmt = (page_format or "").strip().upper()
    if fmt in PAGE_SIZES:
        return fmt
    default = get_settings().pdf_default_format.strip().upper()
    return default if default in PAGE_SIZES else "A4"


def build_pdf_filename(prescription_id: str, page_format: str) -> str:
    return f"prescription-{prescription_id}-{page_format}.pdf"


def _plain(value: Any) -> str:
    """Printable text for a snapshot value; missing values print as ""."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _markup(value: Any) -> str:
    """Like _plain, but escaped for reportlab paragraph markup."""
    return escape(_plain(value)).replace("\n", "<br/>")


def _block(data: dict, key: str) -> dict:
    return data.get(key) or {}


def _as_datetime(value: Any):
    if isinstance(value, str):
        try:
            return parse_iso_string(value)
        except ValueError:
            return None
    return value


def patient_title(gender: str | None, name: str | None) -> str:
    name = name or ""
    if gender == "F":
        return f"Ms. {name}"
    if gender == "M":
        return f"Mr. {name}"
    return name


def validity_date(prescription_data: dict) -> str:
    valid_till = prescription_data.get("valid_till_date")
    if valid_till:
        return format_display_date(valid_till)
    created_at = _as_datetime(prescription_data.get("created_at")) or utc_now()
    return format_display_date(add_days(created_at, get_settings().pdf_validity_days))


def _build_styles() -> dict[str, ParagraphStyle]:
    styles = getSampleStyleSheet()
    normal = ParagraphStyle(
        "RxNormal",
        parent=styles["Normal"],
        fontName="Helvetica",
        fontSize=9,
        leading=11,
        textColor=colors.black,
    )
    return {
        "doctor": ParagraphStyle(
            "RxDoctor",
            parent=styles["Heading2"],
            fontName="Helvetica-Bold",
            fontSize=14,
            leading=17,
            spaceAfter=2,
        ),
        "normal": normal,
        "small": ParagraphStyle("RxSmall", parent=normal, fontSize=8, leading=10),
        "patient": ParagraphStyle("RxPatient", parent=normal, fontSize=13, leading=16),
        "patient_right": ParagraphStyle("RxPatientRight", parent=normal, fontSize=13, leading=16, alignment=TA_RIGHT),
        "right": ParagraphStyle("RxRight", parent=normal, alignment=TA_RIGHT),
        "center": ParagraphStyle("RxCenter", parent=normal, alignment=TA_CENTER),
        "footer": ParagraphStyle("RxFooter", parent=normal, fontSize=8, leading=10, alignment=TA_CENTER),
        "footer_left": ParagraphStyle("RxFooterLeft", parent=normal, fontSize=8, leading=10),
        "validity": ParagraphStyle(
            "RxValidity",
            parent=normal,
            fontName="Helvetica-Bold",
            fontSize=9,
            alignment=TA_CENTER,
            textColor=colors.white,
        ),
    }


class ReportlabPageRenderer:
    """
    Renders one prescription page with reportlab.

    The body (header, patient line, vitals, diagnosis, page-1 clinical
    notes, medication rows) is shrunk to fit the page frame, and the footer
    is drawn at a fixed position, so every call yields exactly one page.
    """

    def render_page(self, prescription_data: dict, page: MedicationPage, page_format: str) -> bytes:
        page_format = normalize_page_format(page_format)
        page_width, page_height = PAGE_SIZES[page_format]
        footer_height = page_height * FOOTER_HEIGHT_RATIO
        styles = _build_styles()

        buffer = BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=(page_width, page_height),
            rightMargin=12 * mm,
            leftMargin=12 * mm,
            topMargin=10 * mm,
            bottomMargin=footer_height + 8 * mm,
            title=f"Prescription - {_plain(prescription_data.get('prescription_id'))} - Page {page.page_number}",
        )
        # SimpleDocTemplate frames have 6pt padding on each side
        width = doc.width - 12

        elements: list = []
        elements.extend(self._header(prescription_data, styles, width))
        elements.append(self._patient_line(prescription_data, styles, width))
        elements.append(Spacer(1, 2 * mm))
        elements.append(self._vitals_strip(prescription_data, styles, width))
        elements.append(Spacer(1, 2 * mm))
        elements.append(self._diagnosis_block(prescription_data, styles, width))
        if page.includes_clinical_notes:
            elements.append(Spacer(1, 2 * mm))
            elements.extend(self._clinical_block(prescription_data, styles, width))
        elements.append(Spacer(1, 3 * mm))
        elements.append(self._medication_table(page, styles, width))

        body = KeepInFrame(0, 0, content=elements, mode="shrink")

        def draw_footer(canvas, doc_template):
            footer = KeepInFrame(
                doc_template.width,
                footer_height,
                content=[self._footer(prescription_data, page, styles, doc_template.width)],
                mode="shrink",
            )
            canvas.saveState()
            footer.wrapOn(canvas, doc_template.width, footer_height)
            footer.drawOn(canvas, doc_template.leftMargin, 6 * mm)
            canvas.restoreState()

        doc.build([body], onFirstPage=draw_footer, onLaterPages=draw_footer)
        return buffer.getvalue()

    def _header(self, data: dict, styles: dict, width: float) -> list:
        doctor = _block(data, "doctor_info")
        hospital = _block(data, "hospital_info")

        doctor_name = _plain(doctor.get("name"))
        if doctor_name and not doctor_name.startswith("Dr."):
            doctor_name = f"Dr. {doctor_name}"

        qualification = _plain(doctor.get("qualification"))
        if doctor.get("specialization"):
            qualification = f"{qualification}, {doctor['specialization']}" if qualification else doctor["specialization"]

        lines = [
            Paragraph(escape(doctor_name), styles["doctor"]),
            Paragraph(escape(qualification), styles["small"]),
            Paragraph(f"Medical Council Regd. No. {_markup(doctor.get('regd_no'))}", styles["small"]),
            Paragraph(_markup(doctor.get("clinic_address")), styles["small"]),
        ]

        # Hospital contact line, as in the letterhead of printed prescriptions
        hospital_parts = [
            _markup(hospital.get(key))
            for key in ("hospital_name", "hospital_address", "hospital_phone", "hospital_email")
            if hospital.get(key)
        ]
        if hospital_parts:
            lines.append(Paragraph(" &bull; ".join(hospital_parts), styles["small"]))

        return [
            *lines,
            Spacer(1, 2 * mm),
            HRFlowable(width=width, thickness=1.5, color=colors.black, spaceAfter=2 * mm),
        ]

    def _patient_line(self, data: dict, styles: dict, width: float) -> Table:
        patient = _block(data, "patient_info")

        headline = patient_title(patient.get("gender"), _plain(patient.get("name")))
        details = []
        if patient.get("age") is not None:
            details.append(f"{_plain(patient['age'])}yr")
        if patient.get("gender"):
            details.append(_plain(patient["gender"]))
        if details:
            headline = f"{headline}, {' / '.join(details)}"

        created_at = _as_datetime(data.get("created_at")) or utc_now()

        rows = [
            [
                Paragraph(f"<b>{escape(headline)}</b>", styles["patient"]),
                Paragraph(f"<b>{format_display_date(created_at)}</b>", styles["patient_right"]),
            ],
            [
                Paragraph(f"Patient ID: {_markup(patient.get('patient_id'))}", styles["small"]),
                Paragraph(f"Prescription ID: {_markup(data.get('prescription_id'))}", styles["right"]),
            ],
        ]
        table = Table(rows, colWidths=[width * 0.65, width * 0.35])
        table.setStyle(
            TableStyle(
                [
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("LEFTPADDING", (0, 0), (-1, -1), 0),
                    ("RIGHTPADDING", (0, 0), (-1, -1), 0),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
                ]
            )
        )
        return table

    def _vitals_strip(self, data: dict, styles: dict, width: float) -> Table:
        vitals = _block(data, "vitals")
        cells = []
        for label, key, unit in (
            ("Ht", "height", "cm"),
            ("Wt", "weight", "kg"),
            ("Temp", "temp", "F"),
            ("HR", "hr", "BPM"),
            ("BP", "bp", "mm.Hg"),
        ):
            cells.append(
                Paragraph(
                    f"<b>{label}:</b> {_markup(vitals.get(key))}<br/><font size=7>({unit})</font>",
                    styles["center"],
                )
            )

        strip_width = width * 0.6
        table = Table([cells], colWidths=[strip_width / 5] * 5, hAlign="LEFT")
        table.setStyle(
            TableStyle(
                [
                    ("GRID", (0, 0), (-1, -1), 0.75, colors.black),
                    ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                    ("TOPPADDING", (0, 0), (-1, -1), 3),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
                ]
            )
        )
        return table

    def _diagnosis_block(self, data: dict, styles: dict, width: float) -> Table:
        diagnosis = _block(data, "diagnosis")

        current = _markup(diagnosis.get("current"))
        if diagnosis.get("current_icd"):
            current = f"{current}, {_markup(diagnosis['current_icd'])}"

        rows = [
            [Paragraph("<b>Current Diagnosis</b>", styles["normal"]), Paragraph(current, styles["normal"])],
            [Paragraph("<b>Known Diagnosis</b>", styles["normal"]), Paragraph(_markup(diagnosis.get("known")), styles["normal"])],
        ]
        table = Table(rows, colWidths=[width * 0.3, width * 0.7])
        table.setStyle(
            TableStyle(
                [
                    ("GRID", (0, 0), (-1, -1), 0.75, colors.black),
                    ("BACKGROUND", (0, 0), (0, -1), LABEL_BACKGROUND),
                    ("BACKGROUND", (1, 0), (1, -1), VALUE_BACKGROUND),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ]
            )
        )
        return table

    def _clinical_block(self, data: dict, styles: dict, width: float) -> list:
        examination = _block(data, "examination")
        complaints = _block(data, "complaints")
        diagnosis = _block(data, "diagnosis")
        history = _block(data, "history")

        on_examination = _markup(examination.get("nutritional_assessment"))
        if examination.get("other_findings"):
            on_examination = f"{on_examination}. {_markup(examination['other_findings'])}"

        complaint = _markup(complaints.get("symptoms"))
        if complaints.get("duration"):
            complaint = f"{complaint}. {_markup(complaints['duration'])}"

        known = _markup(diagnosis.get("known"))
        if history.get("last_updated"):
            known = f"{known}. [Updated at {format_display_date(history['last_updated'])}]"

        rows = [
            [Paragraph(f"<b>Allergy:</b> {_markup(data.get('allergy') or DEFAULT_ALLERGY_TEXT)}", styles["normal"])],
            [Paragraph(f"<b>O/E:</b> {on_examination}", styles["normal"])],
            [Paragraph(f"<b>C/O:</b> {complaint}", styles["normal"])],
            [Paragraph(f"<b>Known:</b> {known}", styles["normal"])],
            [
                Paragraph(
                    f"<b>Personal History:</b> {_markup(history.get('personal'))} &bull; "
                    f"<b>Family History:</b> {_markup(history.get('family'))}",
                    styles["normal"],
                )
            ],
        ]
        table = Table(rows, colWidths=[width])
        table.setStyle(
            TableStyle(
                [
                    ("BOX", (0, 0), (-1, -1), 0.75, colors.black),
                    ("TOPPADDING", (0, 0), (-1, -1), 2),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
                ]
            )
        )
        elements: list = [table]

        if data.get("notes"):
            notes = Table(
                [[Paragraph(f"<b>Notes:</b><br/>{_markup(data['notes'])}", styles["normal"])]],
                colWidths=[width],
            )
            notes.setStyle(TableStyle([("BOX", (0, 0), (-1, -1), 0.75, colors.black)]))
            elements.extend([Spacer(1, 2 * mm), notes])

        return elements

    def _medication_table(self, page: MedicationPage, styles: dict, width: float) -> Table:
        rows: list[list] = [
            [
                Paragraph("<b>#</b>", styles["center"]),
                Paragraph("<b>Medicine</b>", styles["normal"]),
                Paragraph("<b>Frequency</b><br/><font size=7>(MN - AF - EN - NT)</font>", styles["center"]),
                Paragraph("<b>Duration</b>", styles["center"]),
                Paragraph("<b>Quantity</b>", styles["center"]),
            ]
        ]

        for number, medication in page.numbered():
            schedule = " - ".join(
                _markup(medication.get(slot) or "0") for slot in ("morning", "afternoon", "evening", "night")
            )
            rows.append(
                [
                    Paragraph(str(number), styles["center"]),
                    Paragraph(
                        f"<b>{_markup(medication.get('name'))}</b><br/>"
                        f"<font size=7 color='#666666'>{_markup(medication.get('composition'))}</font>",
                        styles["normal"],
                    ),
                    Paragraph(
                        f"{schedule}<br/><font size=7 color='#666666'>{_markup(medication.get('timing') or DEFAULT_TIMING)}</font>",
                        styles["center"],
                    ),
                    Paragraph(_markup(medication.get("duration")), styles["center"]),
                    Paragraph(_markup(medication.get("quantity")), styles["center"]),
                ]
            )

        table = Table(
            rows,
            colWidths=[width * 0.07, width * 0.43, width * 0.2, width * 0.15, width * 0.15],
            repeatRows=1,
        )
        table.setStyle(
            TableStyle(
                [
                    ("BOX", (0, 0), (-1, -1), 0.75, colors.black),
                    ("INNERGRID", (0, 0), (-1, -1), 0.5, colors.black),
                    ("BACKGROUND", (0, 0), (-1, 0), TABLE_HEADER_BACKGROUND),
                    ("VALIGN", (0, 0), (-1, -1), "TOP"),
                    ("TOPPADDING", (0, 0), (-1, -1), 4),
                    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
                ]
            )
        )
        return table

    def _footer(self, data: dict, page: MedicationPage, styles: dict, width: float) -> Table:
        doctor = _block(data, "doctor_info")

        rows = [
            [Paragraph(f"<b>Page {page.page_number} of {page.total_pages}</b>", styles["footer"]), ""],
            [Paragraph(DIGITAL_ISSUE_TEXT, styles["footer"]), ""],
            [Paragraph("<b>Instructions</b>", styles["footer"]), ""],
            [Paragraph(_markup(data.get("instructions")), styles["footer_left"]), ""],
        ]
        if data.get("footer_text"):
            rows.append([Paragraph(_markup(data["footer_text"]), styles["footer_left"]), ""])

        signature = "Signature: ____________________"
        if doctor.get("name"):
            signature = f"{signature}<br/>{_markup(doctor['name'])}"
        rows.append(
            [
                Paragraph(f"Valid till: {validity_date(data)}", styles["validity"]),
                Paragraph(signature, styles["right"]),
            ]
        )

        last = len(rows) - 1
        commands = [
            ("BOX", (0, 0), (-1, -1), 0.75, colors.black),
            ("LINEBELOW", (0, 0), (-1, -2), 0.5, colors.black),
            ("BACKGROUND", (0, 1), (-1, 2), LABEL_BACKGROUND),
            ("BACKGROUND", (0, 3), (-1, 3), colors.HexColor("#f5f5f5")),
            ("BACKGROUND", (0, last), (0, last), VALIDITY_BACKGROUND),
            ("LINEAFTER", (0, last), (0, last), 0.5, colors.black),
            ("VALIGN", (0, last), (-1, last), "MIDDLE"),
        ]
        commands.extend(("SPAN", (0, row), (1, row)) for row in range(last))

        table = Table(rows, colWidths=[width / 2, width / 2])
        table.setStyle(TableStyle(commands))
        return table


def merge_pdf_pages(page_pdfs: Sequence[bytes]) -> BytesIO:
    """
    Concatenate single-page PDFs in the given order.

    Raises RenderError when there is nothing to merge, when a page cannot
    be read, or when a page artifact does not hold exactly one page.
    """
    if not page_pdfs:
        raise RenderError("No rendered pages to merge")

    writer = PdfWriter()
    for page_number, pdf_bytes in enumerate(page_pdfs, start=1):
        try:
            reader = PdfReader(BytesIO(pdf_bytes))
            page_count = len(reader.pages)
        except (PyPdfError, ValueError) as exc:
            raise RenderError(f"Rendered page {page_number} is not a readable PDF") from exc
        if page_count != 1:
            raise RenderError(f"Rendered page {page_number} produced {page_count} pages")
        writer.add_page(reader.pages[0])

    buffer = BytesIO()
    writer.write(buffer)
    buffer.seek(0)
    return buffer


def count_pdf_pages(pdf_bytes: bytes) -> int:
    return len(PdfReader(BytesIO(pdf_bytes)).pages)


def generate_prescription_pdf(
    prescription_data: dict,
    page_format: str = "A4",
    *,
    renderer: PageRenderer | None = None,
    page_timeout_seconds: float | None = None,
) -> BytesIO:
    """
    Generate the full prescription PDF.

    Pages are rendered one after another, each within the per-page time
    budget, and merged in page order. Any page failure or timeout aborts
    the whole document with RenderError; no partial PDF is returned.
    Returns a BytesIO buffer containing the PDF.
    """
    renderer = renderer or ReportlabPageRenderer()
    page_format = normalize_page_format(page_format)
    if page_timeout_seconds is None:
        page_timeout_seconds = get_settings().pdf_page_timeout_seconds

    pages = paginate_medications(prescription_data.get("medications"))
    total_pages = len(pages)
    logger.info(
        "Generating %s page(s) for %s medication(s), prescription=%s format=%s",
        total_pages,
        len(prescription_data.get("medications") or []),
        prescription_data.get("prescription_id"),
        page_format,
    )

    page_pdfs: list[bytes] = []
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rx-pdf")
    try:
        for page in pages:
            future = executor.submit(renderer.render_page, prescription_data, page, page_format)
            try:
                page_pdfs.append(future.result(timeout=page_timeout_seconds))
            except FuturesTimeoutError as exc:
                future.cancel()
                logger.error(
                    "Timed out rendering page %s/%s after %ss; the render thread may still be busy",
                    page.page_number,
                    total_pages,
                    page_timeout_seconds,
                )
                raise RenderTimeoutError(
                    f"Timed out rendering page {page.page_number} of {total_pages}"
                ) from exc
            except RenderError:
                raise
            except Exception as exc:
                logger.error("Failed to render page %s/%s: %s", page.page_number, total_pages, exc, exc_info=True)
                raise RenderError(f"Failed to render page {page.page_number} of {total_pages}") from exc
    finally:
        # A timed-out render cannot be interrupted; its thread keeps running
        # until the renderer returns and its result is discarded.
        executor.shutdown(wait=False, cancel_futures=True)

    merged = merge_pdf_pages(page_pdfs)
    logger.info("Merged %s page(s) for prescription=%s", total_pages, prescription_data.get("prescription_id"))
    return merged
