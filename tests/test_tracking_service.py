from datetime import datetime, timedelta, timezone

from app.shared.services.tracking_service import TRACKING_ALPHABET, TrackingNumberService


class TestTrackingNumberGeneration:
    def test_long_format_layout(self):
        tracking_id = TrackingNumberService.generate("TAS", "long", now=datetime(2025, 1, 19, 12, 0))
        prefix, date_part, body, check = tracking_id.split("-")

        assert prefix == "TAS"
        assert date_part == "20250119"
        assert len(body) == 6
        assert all(char in TRACKING_ALPHABET for char in body)
        assert len(check) == 1

    def test_generated_ids_validate(self):
        for _ in range(200):
            assert TrackingNumberService.validate(TrackingNumberService.generate())

    def test_aware_datetime_uses_utc_date(self):
        moment = datetime(2025, 1, 20, 1, 30, tzinfo=timezone(timedelta(hours=5)))
        tracking_id = TrackingNumberService.generate(now=moment)
        assert tracking_id.split("-")[1] == "20250119"

    def test_prefix_is_uppercased(self):
        assert TrackingNumberService.generate(" jmx ").startswith("JMX-")

    def test_short_format_has_no_checksum(self):
        tracking_id = TrackingNumberService.generate("TAS", "short")
        prefix, body = tracking_id.split("-")
        assert prefix == "TAS"
        assert len(body) == 6
        assert not TrackingNumberService.validate(tracking_id)

    def test_body_avoids_ambiguous_characters(self):
        for char in "01IO":
            assert char not in TRACKING_ALPHABET


class TestTrackingNumberValidation:
    def test_known_checksum(self):
        base = "TAS-20250119-A3F7K2"
        expected = TrackingNumberService.checksum(base)
        assert TrackingNumberService.validate(f"{base}-{expected}")

    def test_checksum_is_sum_of_codes_mod_36(self):
        base = "TAS-20250119-A3F7K2"
        total = sum(ord(char) for char in base) % 36
        assert TrackingNumberService.checksum(base) == "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"[total]

    def test_single_character_change_is_detected(self):
        tracking_id = TrackingNumberService.generate(now=datetime(2025, 1, 19))
        body_index = len("TAS-20250119-")
        original = tracking_id[body_index]
        replacement = next(
            char for char in TRACKING_ALPHABET if (ord(char) - ord(original)) % 36 != 0
        )
        tampered = tracking_id[:body_index] + replacement + tracking_id[body_index + 1:]
        assert not TrackingNumberService.validate(tampered)

    def test_wrong_check_character(self):
        tracking_id = TrackingNumberService.generate()
        check = tracking_id[-1]
        wrong = "A" if check != "A" else "B"
        assert not TrackingNumberService.validate(tracking_id[:-1] + wrong)

    def test_malformed_inputs_never_raise(self):
        for value in (None, 123, "", "TAS", "tas-20250119-A3F7K2-X", "TAS-2025011-A3F7K2-X", "TAS-20250119-A3F7K-X"):
            assert TrackingNumberService.validate(value) is False
