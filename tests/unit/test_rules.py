"""
Tests for extraction confidence rules
"""

import pytest

from webprobe.research.rules import Equals, HasField, LengthAbove, Threshold, apply_confidence_rules
from webprobe.research.types import EXTRACTION_SCHEMAS


class TestRules:
    def test_has_field(self):
        rule = HasField("price")

        assert rule.evaluate({"price": "$10"}) is True
        assert rule.evaluate({"price": ""}) is False
        assert rule.evaluate({"price": []}) is False
        assert rule.evaluate({"price": None}) is False
        assert rule.evaluate({}) is False

    def test_dotted_path(self):
        rule = HasField("last_round.amount")

        assert rule.evaluate({"last_round": {"amount": 5_000_000}}) is True
        assert rule.evaluate({"last_round": "Series A"}) is False

    def test_equals_ignores_case(self):
        assert Equals("currency", "usd").evaluate({"currency": " USD "}) is True
        assert Equals("free_tier", True).evaluate({"free_tier": True}) is True
        assert Equals("free_tier", True).evaluate({"free_tier": False}) is False

    def test_threshold(self):
        assert Threshold("employees", ">=", 50).evaluate({"employees": 50}) is True
        assert Threshold("employees", "<", 50).evaluate({"employees": "120"}) is False
        assert Threshold("employees", ">", 0).evaluate({}) is False

    def test_length_above(self):
        rule = LengthAbove("plans", 1)

        assert rule.evaluate({"plans": ["a", "b"]}) is True
        assert rule.evaluate({"plans": ["a"]}) is False


class TestApplyConfidenceRules:
    def test_adjustments_accumulate(self):
        rules = [HasField("price", 0.2), LengthAbove("plans", 1, 0.1), HasField("sso", 0.3)]

        confidence = apply_confidence_rules(0.5, {"price": "$10", "plans": ["a", "b"]}, rules)

        assert confidence == pytest.approx(0.8)

    def test_clamped(self):
        assert apply_confidence_rules(0.9, {"price": 1}, [HasField("price", 0.5)]) == 1.0
        assert apply_confidence_rules(0.1, {"price": 1}, [HasField("price", -0.5)]) == 0.0

    def test_unevaluable_rules_are_skipped(self):
        rules = [
            Threshold("employees", ">", 10, 0.2),
            Threshold("employees", "~", 10, 0.2),
            LengthAbove("plans", 1, 0.2),
            HasField("employees", 0.1),
        ]

        confidence = apply_confidence_rules(0.5, {"employees": "many", "plans": 3}, rules)

        assert confidence == pytest.approx(0.6)

    def test_schema_rules(self):
        schema = EXTRACTION_SCHEMAS["pricing"]
        data = {"price": "$10", "plans": ["Starter", "Pro"], "billing_period": "month"}

        assert apply_confidence_rules(0.5, data, schema.confidence_rules) == pytest.approx(0.85)


class TestSchemas:
    def test_required_fields(self):
        schema = EXTRACTION_SCHEMAS["company_info"]

        assert schema.conforms({"company_name": "Acme"}) is True
        assert schema.missing_fields({"description": "x"}) == ["company_name"]

    def test_unknown_fields(self):
        schema = EXTRACTION_SCHEMAS["pricing"]

        assert schema.unknown_fields({"price": "$10", "discount": "20%"}) == ["discount"]
