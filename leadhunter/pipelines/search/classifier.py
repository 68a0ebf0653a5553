"""Phone classification: splits fetched records into has-phone / no-phone.

Selection rule: the first number flagged ``mobile``, else the first number
of any type; a number counts when its sanitized (or raw) form is non-empty.
Pure and order-preserving, so the same input always yields the same split.
"""

from typing import NamedTuple

from leadhunter.orchestrator.schemas import LeadRecord, PhoneNumber


class PhoneCandidate(NamedTuple):
    record: LeadRecord
    phone: str
    phone_type: str


class Classification(NamedTuple):
    with_phone: list[PhoneCandidate]
    without_phone: list[LeadRecord]


def select_phone(numbers: list[PhoneNumber]) -> PhoneNumber | None:
    if not numbers:
        return None
    for number in numbers:
        if number.type == "mobile":
            return number
    return numbers[0]


def classify_records(records: list[LeadRecord]) -> Classification:
    with_phone: list[PhoneCandidate] = []
    without_phone: list[LeadRecord] = []
    for record in records:
        selected = select_phone(record.phone_numbers)
        number = (selected.sanitized_number or selected.raw_number) if selected else ""
        if number:
            with_phone.append(PhoneCandidate(record, number, selected.type))
        else:
            without_phone.append(record)
    return Classification(with_phone, without_phone)
