import time
from io import BytesIO

import pytest
from pypdf import PdfReader

from app.utils.prescription_pdf import (
    RenderError,
    RenderTimeoutError,
    build_pdf_filename,
    count_pdf_pages,
    generate_prescription_pdf,
    merge_pdf_pages,
    normalize_page_format,
    patient_title,
    validity_date,
)
from conftest import BlankPageRenderer, FailingRenderer, prescription_payload


def _snapshot(medication_count: int, **overrides) -> dict:
    data = prescription_payload(medication_count, **overrides)
    data["hospital_info"] = {"hospital_name": "City Hospital A", "admin_name": "Admin A"}
    data["created_at"] = "2025-03-07T10:30:00+00:00"
    return data


def _page_texts(pdf: BytesIO) -> list[str]:
    return [page.extract_text() for page in PdfReader(pdf).pages]


@pytest.mark.parametrize("count, expected_pages", [(0, 1), (7, 1), (8, 2), (12, 2), (18, 3)])
def test_page_count_follows_medication_count(count, expected_pages):
    pdf = generate_prescription_pdf(_snapshot(count), "A4")
    assert count_pdf_pages(pdf.getvalue()) == expected_pages


def test_twelve_medications_layout():
    texts = _page_texts(generate_prescription_pdf(_snapshot(12), "A4"))
    assert len(texts) == 2

    first, second = texts
    for i in range(1, 8):
        assert f"Med {i:02d}" in first
        assert f"Med {i:02d}" not in second
    for i in range(8, 13):
        assert f"Med {i:02d}" in second
        assert f"Med {i:02d}" not in first

    # Clinical notes only on the first page
    assert "No allergy reported yet" in first
    assert "No allergy reported yet" not in second

    assert "Page 1 of 2" in first
    assert "Page 2 of 2" in second
    for text in texts:
        assert "Dr. Asha Mehta" in text
        assert "RX-0001" in text


def test_header_and_footer_content():
    data = _snapshot(2, allergy="Penicillin", notes="Review after a week", footer_text="Clinic closed on Sundays")
    (text,) = _page_texts(generate_prescription_pdf(data, "A5"))

    assert "Mr. Rahul Verma" in text
    assert "07 Mar 2025" in text
    assert "Penicillin" in text
    assert "Review after a week" in text
    assert "Clinic closed on Sundays" in text
    assert "Take rest and drink fluids." in text
    assert "Valid till: 06 Apr 2025" in text
    assert "issued digitally" in text


def test_missing_fields_never_print_none():
    data = {
        "prescription_id": "RX-EMPTY",
        "patient_info": {"name": "Sita"},
        "medications": [{"name": "Only name"}],
        "created_at": "2025-03-07T10:30:00+00:00",
    }
    (text,) = _page_texts(generate_prescription_pdf(data, "A4"))
    assert "None" not in text
    assert "null" not in text
    assert "Only name" in text
    assert "After food" in text


def test_a5_pages_are_smaller_than_a4():
    a4 = PdfReader(generate_prescription_pdf(_snapshot(3), "A4")).pages[0]
    a5 = PdfReader(generate_prescription_pdf(_snapshot(3), "A5")).pages[0]
    assert float(a5.mediabox.width) < float(a4.mediabox.width)
    assert float(a5.mediabox.height) < float(a4.mediabox.height)


def test_renderer_receives_pages_in_order():
    renderer = BlankPageRenderer()
    pdf = generate_prescription_pdf(_snapshot(18), "A4", renderer=renderer)

    assert count_pdf_pages(pdf.getvalue()) == 3
    assert [p.page_number for p in renderer.pages] == [1, 2, 3]
    assert [p.start_number for p in renderer.pages] == [1, 8, 18]


def test_page_timeout_aborts_document(caplog):
    class SlowRenderer(BlankPageRenderer):
        def render_page(self, prescription_data, page, page_format):
            if page.page_number == 2:
                time.sleep(1)
            return super().render_page(prescription_data, page, page_format)

    with pytest.raises(RenderTimeoutError):
        generate_prescription_pdf(_snapshot(12), "A4", renderer=SlowRenderer(), page_timeout_seconds=0.1)
    assert "Timed out rendering page 2/2" in caplog.text
    assert "may still be busy" in caplog.text


def test_renderer_failure_raises_render_error():
    with pytest.raises(RenderError) as exc_info:
        generate_prescription_pdf(_snapshot(3), "A4", renderer=FailingRenderer())
    assert not isinstance(exc_info.value, RenderTimeoutError)


def test_merge_rejects_empty_and_broken_input():
    with pytest.raises(RenderError):
        merge_pdf_pages([])
    with pytest.raises(RenderError):
        merge_pdf_pages([b"not a pdf"])


def test_merge_rejects_multi_page_artifact():
    two_pages = generate_prescription_pdf(_snapshot(8), "A4").getvalue()
    with pytest.raises(RenderError):
        merge_pdf_pages([two_pages])


def test_normalize_page_format():
    assert normalize_page_format("a5") == "A5"
    assert normalize_page_format("A4") == "A4"
    assert normalize_page_format("letter") == "A4"
    assert normalize_page_format(None) == "A4"


def test_small_helpers():
    assert build_pdf_filename("RX-1", "A5") == "prescription-RX-1-A5.pdf"
    assert patient_title("F", "Asha") == "Ms. Asha"
    assert patient_title("M", "Ravi") == "Mr. Ravi"
    assert patient_title(None, "Kim") == "Kim"
    assert validity_date({"valid_till_date": "2025-12-31T00:00:00Z"}) == "31 Dec 2025"
