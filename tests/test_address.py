"""Tests for address defaults, deduplication and validation."""

from datetime import UTC, datetime, timedelta

from toolshed import address as A

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def make(street="12 Harbor St", type=A.AddressType.SHIPPING, is_default=False, created_at=T0, city="Austin", first_name="Dana"):
    return A.Address(
        first_name=first_name,
        last_name="Reyes",
        street=street,
        city=city,
        state="TX",
        postal_code="78701",
        type=type,
        is_default=is_default,
        created_at=created_at,
    )


class TestValidation:
    def test_valid_form(self, shipping_form):
        assert A.validate_address(shipping_form) == {}

    def test_required_fields_are_reported_per_field(self):
        errors = A.validate_address({})
        assert set(errors) == set(A.REQUIRED_FIELDS)
        assert errors["postalCode"] == "ZIP code is required"

    def test_bad_zip(self, shipping_form):
        errors = A.validate_address({**shipping_form, "postalCode": "7870"})
        assert errors == {"postalCode": "Please enter a valid ZIP code"}

    def test_zip_plus_four(self, shipping_form):
        assert A.validate_address({**shipping_form, "postalCode": "78701-1234"}) == {}

    def test_bad_phone_and_email(self, shipping_form):
        errors = A.validate_address({**shipping_form, "phone": "12", "email": "dana@"})
        assert errors == {
            "phone": "Please enter a valid phone number",
            "email": "Please enter a valid email address",
        }

    def test_phone_is_optional(self, shipping_form):
        assert A.validate_address({**shipping_form, "phone": ""}) == {}


class TestDefaults:
    def test_explicit_default_wins(self):
        first = make("1 A St")
        chosen = make("2 B St", is_default=True)
        assert A.default_for((first, chosen), A.AddressType.SHIPPING) == chosen

    def test_falls_back_to_any_serving_address(self):
        only = make("1 A St", type=A.AddressType.BOTH)
        defaults = A.resolve_defaults((only,))
        assert defaults.shipping == only
        assert defaults.billing == only

    def test_several_defaults_newest_wins(self):
        old = make("1 A St", is_default=True, created_at=T0)
        new = make("2 B St", is_default=True, created_at=T0 + timedelta(days=1))
        assert A.default_for((new, old), A.AddressType.SHIPPING) == new

    def test_several_defaults_tie_goes_to_later_entry(self):
        a = make("1 A St", is_default=True)
        b = make("2 B St", is_default=True)
        assert A.default_for((a, b), A.AddressType.SHIPPING) == b

    def test_nothing_for_missing_type(self):
        assert A.resolve_defaults((make(),)).billing is None


class TestDedupeAndSave:
    def test_first_address_becomes_default(self):
        book = A.dedupe_and_save(make(), (), A.AddressType.SHIPPING)
        assert len(book) == 1
        assert book[0].is_default

    def test_second_address_is_not_default(self):
        book = A.dedupe_and_save(make("1 A St"), (), A.AddressType.SHIPPING)
        book = A.dedupe_and_save(make("2 B St"), book, A.AddressType.SHIPPING)
        assert [a.is_default for a in book] == [True, False]

    def test_same_place_ignores_case_and_whitespace(self):
        book = A.dedupe_and_save(make("12 Harbor St"), (), A.AddressType.SHIPPING)
        again = make("  12   HARBOR st ", city="AUSTIN", first_name="Someone Else")
        assert A.dedupe_and_save(again, book, A.AddressType.SHIPPING) == book

    def test_saving_twice_is_a_no_op(self):
        book = A.dedupe_and_save(make(), (), A.AddressType.BILLING)
        assert A.dedupe_and_save(make(), book, A.AddressType.BILLING) == book

    def test_shipping_then_billing_widens_to_both(self):
        book = A.dedupe_and_save(make(), (), A.AddressType.SHIPPING)
        book = A.dedupe_and_save(make(), book, A.AddressType.BILLING)
        assert len(book) == 1
        assert book[0].type is A.AddressType.BOTH

    def test_widened_default_takes_over_other_default(self):
        billing = make("9 Bill Rd", type=A.AddressType.BILLING, is_default=True)
        shipping = make("12 Harbor St", type=A.AddressType.SHIPPING, is_default=True)
        book = A.dedupe_and_save(make("12 Harbor St"), (billing, shipping), A.AddressType.BILLING)

        assert book[1].type is A.AddressType.BOTH
        assert book[1].is_default
        assert not book[0].is_default
        assert A.resolve_defaults(book).billing == book[1]

    def test_both_is_default_only_when_neither_type_has_one(self):
        shipping = make("1 A St", is_default=True)
        book = A.dedupe_and_save(make("2 B St"), (shipping,), A.AddressType.BOTH)
        assert not book[1].is_default
