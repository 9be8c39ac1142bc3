import unittest

from app.services.phone import normalize_phone_number


class PhoneNormalizationTests(unittest.TestCase):
    def test_normalization(self):
        cases = {
            "+911234567890": "911234567890",
            "+91 12345-67890": "911234567890",
            "1234567890": "911234567890",
            "01234567890": "911234567890",
            "14155550100": "14155550100",
            "": "",
            None: "",
        }
        for raw, expected in cases.items():
            with self.subTest(raw=raw):
                self.assertEqual(normalize_phone_number(raw), expected)
