# app/utils/prescription_pagination.py
"""
Splits a prescription's medication list across printed pages.

Page 1 also carries the clinical notes block, so it holds fewer rows:

    page 1      -> medications 1..7
    page k > 1  -> medications 7 + (k-2)*10 + 1 .. 7 + (k-1)*10

Row numbers ("#" column) run continuously across pages.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

FIRST_PAGE_CAPACITY = 7
OTHER_PAGE_CAPACITY = 10


@dataclass(frozen=True)
class MedicationPage:
    page_number: int
    total_pages: int
    start_number: int
    medications: tuple[Any, ...]

    @property
    def includes_clinical_notes(self) -> bool:
        return self.page_number == 1

    def numbered(self) -> Iterator[tuple[int, Any]]:
        """Yield (running number, medication) for the rows of this page."""
        return enumerate(self.medications, start=self.start_number)


def calculate_total_pages(medication_count: int) -> int:
    if medication_count < 0:
        raise ValueError("medication_count must be >= 0")
    if medication_count <= FIRST_PAGE_CAPACITY:
        # An empty medication table still gets a page
        return 1
    remaining = medication_count - FIRST_PAGE_CAPACITY
    return 1 + math.ceil(remaining / OTHER_PAGE_CAPACITY)


def _page_start_index(page_number: int) -> int:
    if page_number < 1:
        raise ValueError("page_number starts at 1")
    if page_number == 1:
        return 0
    return FIRST_PAGE_CAPACITY + (page_number - 2) * OTHER_PAGE_CAPACITY


def page_capacity(page_number: int) -> int:
    if page_number < 1:
        raise ValueError("page_number starts at 1")
    return FIRST_PAGE_CAPACITY if page_number == 1 else OTHER_PAGE_CAPACITY


def first_medication_number(page_number: int) -> int:
    return _page_start_index(page_number) + 1


def medications_for_page(medications: Sequence[Any], page_number: int) -> list[Any]:
    start = _page_start_index(page_number)
    return list(medications[start : start + page_capacity(page_number)])


def paginate_medications(medications: Sequence[Any] | None) -> list[MedicationPage]:
    medications = list(medications or [])
    total_pages = calculate_total_pages(len(medications))
    return [
        MedicationPage(
            page_number=page_number,
            total_pages=total_pages,
            start_number=first_medication_number(page_number),
            medications=tuple(medications_for_page(medications, page_number)),
        )
        for page_number in range(1, total_pages + 1)
    ]
