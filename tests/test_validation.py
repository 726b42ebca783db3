"""
License validation tests.
"""

from datetime import datetime, timezone

from licensing.canonical import loads
from licensing.model import LicenseRecord
from licensing.validation import iter_sublicenses, validate_license


def _issue(key_pair, passphrase, **kwargs):
    b = LicenseRecord.new().with_maximum_utilization(1)
    if "expires" in kwargs:
        b.expires_at(kwargs["expires"])
    for sub in kwargs.get("sublicenses", ()):
        b.add_sublicense(sub)
    return b.create_and_sign(key_pair.private_pem, passphrase)


class TestValidateLicense:

    def test_valid(self, key_pair, passphrase):
        record = _issue(key_pair, passphrase)
        assert validate_license(record, key_pair.public_pem) == []

    def test_without_key_checks_expiry_only(self):
        assert validate_license(LicenseRecord(quantity=1)) == []

    def test_expired(self, key_pair, passphrase):
        record = _issue(key_pair, passphrase, expires=datetime(2020, 1, 1, tzinfo=timezone.utc))
        failures = validate_license(record, key_pair.public_pem)
        assert [f.code for f in failures] == ["expired"]
        assert "Wed, 01 Jan 2020 00:00:00 GMT" in failures[0].message

    def test_not_yet_expired_at_given_time(self, key_pair, passphrase):
        record = _issue(key_pair, passphrase, expires=datetime(2020, 1, 1, tzinfo=timezone.utc))
        assert validate_license(record, now=datetime(2019, 6, 1, tzinfo=timezone.utc)) == []

    def test_invalid_signature(self, key_pair, passphrase, other_key_pair):
        record = _issue(key_pair, passphrase)
        failures = validate_license(record, other_key_pair.public_pem)
        assert [f.code for f in failures] == ["invalid_signature"]
        assert failures[0].how_to_resolve

    def test_unsigned(self, key_pair):
        failures = validate_license(LicenseRecord(quantity=1), key_pair.public_pem)
        assert [f.code for f in failures] == ["missing_signature"]

    def test_malformed_key(self, key_pair, passphrase):
        failures = validate_license(_issue(key_pair, passphrase), "garbage")
        assert [f.code for f in failures] == ["error"]

    def test_expired_and_tampered(self, key_pair, passphrase):
        record = _issue(key_pair, passphrase, expires=datetime(2020, 1, 1, tzinfo=timezone.utc))
        tampered = loads(record.to_xml().replace("<Quantity>1</Quantity>", "<Quantity>2</Quantity>"))
        codes = sorted(f.code for f in validate_license(tampered, key_pair.public_pem))
        assert codes == ["expired", "invalid_signature"]

    def test_children_not_checked(self, key_pair, passphrase, other_key_pair):
        child = _issue(other_key_pair, None, expires=datetime(2020, 1, 1, tzinfo=timezone.utc))
        parent = _issue(key_pair, passphrase, sublicenses=[child])
        assert validate_license(parent, key_pair.public_pem) == []
        _, sub = next(iter_sublicenses(parent))
        assert [f.code for f in validate_license(sub, other_key_pair.public_pem)] == ["expired"]


class TestIterSublicenses:

    def test_empty(self):
        assert list(iter_sublicenses(LicenseRecord())) == []

    def test_depth_first(self):
        a0 = LicenseRecord(quantity=10)
        a = LicenseRecord(quantity=1, sublicenses=(a0,))
        b = LicenseRecord(quantity=2)
        root = LicenseRecord(sublicenses=(a, b))
        assert [(p, r.quantity) for p, r in iter_sublicenses(root)] == [("0", 1), ("0/0", 10), ("1", 2)]
