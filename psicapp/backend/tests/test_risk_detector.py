import unittest

from psicapp.backend.app.risk_detector import RISK_KEYWORDS, detect_risk


class RiskDetectorTests(unittest.TestCase):
    def test_reports_every_matching_phrase_in_list_order(self):
        result = detect_risk("ya no aguanto más y quiero desaparecer para siempre")
        self.assertTrue(result["is_at_risk"])
        self.assertEqual(
            result["detected_keywords"],
            ["ya no aguanto más", "desaparecer para siempre"],
        )

    def test_neutral_text_is_not_at_risk(self):
        result = detect_risk("Hoy fue un buen día, salí a caminar con mis amigos.")
        self.assertFalse(result["is_at_risk"])
        self.assertEqual(result["detected_keywords"], [])

    def test_match_is_case_insensitive(self):
        result = detect_risk("A veces pienso en el SUICIDIO")
        self.assertEqual(result["detected_keywords"], ["suicidio"])

    def test_order_follows_keyword_list_not_message(self):
        result = detect_risk("mejor morir, ya no quiero vivir")
        self.assertEqual(result["detected_keywords"], ["no quiero vivir", "mejor morir"])

    def test_embedded_substring_still_matches(self):
        result = detect_risk("la palabra antisuicidio aparece en el folleto")
        self.assertTrue(result["is_at_risk"])
        self.assertIn("suicidio", result["detected_keywords"])

    def test_every_configured_phrase_is_detected(self):
        for keyword in RISK_KEYWORDS:
            with self.subTest(keyword=keyword):
                result = detect_risk(f"siento que {keyword.upper()} es lo único")
                self.assertTrue(result["is_at_risk"])
                self.assertIn(keyword, result["detected_keywords"])

    def test_empty_message(self):
        self.assertEqual(detect_risk(""), {"is_at_risk": False, "detected_keywords": []})


if __name__ == "__main__":
    unittest.main()
