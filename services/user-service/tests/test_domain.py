from __future__ import annotations

import uuid

import pytest

from app.domain.contracts import UNSET, AddressChanges, UserChanges
from app.domain.errors import InvalidIdentifierError, ValidationError
from app.domain.identifiers import UserId
from app.domain.service import unique_by_type
from app.domain.user import Address, AddressType


def test_user_id_parse_accepts_canonical_forms():
    raw = "3F2504E0-4F89-11D3-9A0C-0305E82C3301"
    parsed = UserId.parse(raw)

    assert parsed.value == uuid.UUID(raw)
    assert str(parsed) == raw.lower()
    assert UserId.parse(str(parsed)) == parsed


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "not-a-uuid",
        "3f2504e04f8911d39a0c0305e82c3301",
        "urn:uuid:3f2504e0-4f89-11d3-9a0c-0305e82c3301",
        " 3f2504e0-4f89-11d3-9a0c-0305e82c3301",
    ],
)
def test_user_id_parse_rejects_other_spellings(raw):
    with pytest.raises(InvalidIdentifierError):
        UserId.parse(raw)


def test_new_user_ids_are_distinct_and_non_empty():
    first, second = UserId.new(), UserId.new()
    assert first != second
    assert not first.is_empty
    assert UserId(uuid.UUID(int=0)).is_empty


@pytest.mark.parametrize(
    "external,internal",
    [(1, AddressType.WORK), (2, AddressType.HOME), (3, AddressType.BILLING)],
)
def test_address_type_external_mapping(external, internal):
    assert AddressType.from_external(external) is internal
    assert internal.external == external


@pytest.mark.parametrize("external", [0, 4, -1])
def test_address_type_rejects_unknown_values(external):
    with pytest.raises(ValidationError):
        AddressType.from_external(external)


def test_changesets_report_only_set_fields():
    changes = UserChanges(first_name="", phone_number="123456789")

    assert changes.set_fields() == {"first_name": "", "phone_number": "123456789"}
    assert not changes.is_empty()
    assert UserChanges().is_empty()
    assert AddressChanges(city=UNSET).is_empty()


def test_address_changes_build_sparse_address():
    address = AddressChanges(street="Main", postal_code="00950").to_address(AddressType.HOME)

    assert address == Address(AddressType.HOME, street="Main", postal_code="00950")


def test_unique_by_type_keeps_first_occurrence():
    items = [
        Address(AddressType.HOME, street="first"),
        Address(AddressType.WORK, street="work"),
        Address(AddressType.HOME, street="second"),
    ]

    kept = unique_by_type(items)

    assert [(a.type, a.street) for a in kept] == [
        (AddressType.HOME, "first"),
        (AddressType.WORK, "work"),
    ]
