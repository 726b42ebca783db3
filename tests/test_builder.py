"""
Builder tests, including the end-to-end issuing scenario.
"""

import uuid
from datetime import datetime, timezone

import pytest

from licensing.builder import LicenseBuilder
from licensing.canonical import canonical_bytes, loads, to_element
from licensing.model import NEVER_EXPIRES, NIL_ID, Customer, LicenseKind, LicenseRecord
from licensing.signing import verify


class TestLicenseBuilder:

    def test_defaults(self):
        r = LicenseBuilder().create()
        assert r.id == NIL_ID
        assert r.kind is LicenseKind.NONE
        assert r.quantity == 0
        assert r.expiration == NEVER_EXPIRES
        assert r.customer is None
        assert r.product_features is None
        assert r.additional_attributes is None
        assert r.sublicenses == ()

    def test_sentinel_written_explicitly(self):
        r = LicenseBuilder().create()
        assert canonical_bytes(to_element(r)) == (
            b"<License><Expiration>Fri, 31 Dec 9999 23:59:59 GMT</Expiration></License>"
        )
        assert loads(r.to_xml()).expiration == NEVER_EXPIRES

    def test_setters_overwrite(self):
        b = LicenseBuilder().with_maximum_utilization(3).with_maximum_utilization(7)
        b.licensed_to("A").licensed_to("B", "b@example.com")
        r = b.create()
        assert r.quantity == 7
        assert r.customer == Customer("B", "b@example.com")

    def test_identifier_from_string(self):
        r = LicenseBuilder().with_unique_identifier("0b7e7c1a-7c0f-4bb0-9d42-2f3a1c9e6d55").create()
        assert r.id == uuid.UUID("0b7e7c1a-7c0f-4bb0-9d42-2f3a1c9e6d55")

    def test_kind_from_string(self):
        assert LicenseBuilder().of_kind("trial").create().kind is LicenseKind.TRIAL

    def test_add_and_replace_features(self):
        b = LicenseBuilder().add_product_feature("a", "1").add_product_feature("b", "2")
        assert dict(b.product_features) == {"a": "1", "b": "2"}
        b.with_product_features({"c": "3"})
        assert dict(b.create().product_features) == {"c": "3"}

    def test_replace_attributes_keeps_features(self):
        b = (
            LicenseBuilder()
            .add_product_feature("seats", "5")
            .add_additional_attribute("old", "x")
            .with_additional_attributes({"region": "eu"})
        )
        r = b.create()
        assert dict(r.product_features) == {"seats": "5"}
        assert dict(r.additional_attributes) == {"region": "eu"}

    def test_sublicenses(self):
        child = LicenseBuilder().with_maximum_utilization(1).create()
        b = LicenseBuilder().add_sublicense(child).add_sublicense(child)
        assert len(b.sublicenses) == 2
        b.with_sublicenses([child])
        assert b.create().sublicenses == (child,)

    def test_create_is_independent_of_later_changes(self):
        b = LicenseBuilder().add_product_feature("a", "1")
        first = b.create()
        b.add_product_feature("b", "2")
        assert dict(first.product_features) == {"a": "1"}

    def test_version(self):
        r = LicenseBuilder().with_version(3).create()
        assert to_element(r).get("version") == "3"

    def test_state_properties(self):
        when = datetime(2031, 6, 1, tzinfo=timezone.utc)
        b = LicenseBuilder().expires_at(when).of_kind(LicenseKind.UNRESTRICTED)
        assert b.expiration == when
        assert b.kind is LicenseKind.UNRESTRICTED
        assert b.id == NIL_ID

    @pytest.mark.parametrize("call", [
        lambda b: b.with_maximum_utilization("5"),
        lambda b: b.with_maximum_utilization(True),
        lambda b: b.expires_at("2030-01-01"),
        lambda b: b.of_kind(3),
        lambda b: b.with_unique_identifier(42),
        lambda b: b.add_product_feature("seats", 5),
        lambda b: b.add_additional_attribute(1, "x"),
        lambda b: b.licensed_to(5),
        lambda b: b.add_sublicense("child"),
        lambda b: b.with_version(1.5),
    ])
    def test_type_constraints(self, call):
        with pytest.raises(TypeError):
            call(LicenseBuilder())

    @pytest.mark.parametrize("call", [
        lambda b: b.add_product_feature("seats", "5\x00"),
        lambda b: b.add_additional_attribute("region\x1b", "eu"),
        lambda b: b.licensed_to("Jane\x07"),
    ])
    def test_rejects_text_not_allowed_in_xml(self, call):
        with pytest.raises(ValueError):
            call(LicenseBuilder())

    def test_negative_quantity(self):
        with pytest.raises(ValueError):
            LicenseBuilder().with_maximum_utilization(-1)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            LicenseBuilder().of_kind("Gold")


class TestIssuingScenario:

    def test_issue_persist_reload_verify(self, key_pair, passphrase):
        """Issue a 5-seat Standard license, persist it, reload it and verify it."""
        license_id = uuid.uuid4()
        signed = (
            LicenseRecord.new()
            .with_unique_identifier(license_id)
            .of_kind(LicenseKind.STANDARD)
            .with_maximum_utilization(5)
            .licensed_to("Jane Doe", "jane@example.com")
            .expires_at(datetime(2030, 1, 1, tzinfo=timezone.utc))
            .add_product_feature("seats", "5")
            .create_and_sign(key_pair.private_pem, passphrase)
        )
        text = str(signed)
        assert "<Expiration>Tue, 01 Jan 2030 00:00:00 GMT</Expiration>" in text

        reloaded = LicenseRecord.load(text)
        assert reloaded.id == license_id
        assert reloaded.kind is LicenseKind.STANDARD
        assert reloaded.quantity == 5
        assert reloaded.customer == Customer("Jane Doe", "jane@example.com")
        assert reloaded.expiration == datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert dict(reloaded.product_features) == {"seats": "5"}
        assert verify(reloaded, key_pair.public_pem)

        tampered = LicenseRecord.load(text.replace("<Quantity>5</Quantity>", "<Quantity>6</Quantity>"))
        assert not verify(tampered, key_pair.public_pem)
