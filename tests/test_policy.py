"""Unit tests for policy comparison."""

import json

import pytest

from policy import normalize_policy, policies_equivalent


def _doc(**statement):
    base = {"Sid": "A", "Effect": "Allow", "Principal": "*", "Action": "x:Get"}
    base.update(statement)
    return {"Version": "2012-10-17", "Statement": [base]}


class TestPoliciesEquivalent:
    """Tests for policies_equivalent()."""

    def test_identical_text(self):
        text = json.dumps(_doc())
        assert policies_equivalent(text, text)

    def test_key_order_and_whitespace(self):
        doc = _doc()
        a = json.dumps(doc)
        b = json.dumps(doc, indent=4, sort_keys=True)
        assert policies_equivalent(a, b)

    def test_single_item_list_equals_scalar(self):
        a = json.dumps(_doc(Action="x:Get"))
        b = json.dumps(_doc(Action=["x:Get"]))
        assert policies_equivalent(a, b)

    def test_list_order_ignored(self):
        a = json.dumps(_doc(Action=["x:Get", "x:Put"]))
        b = json.dumps(_doc(Action=["x:Put", "x:Get"]))
        assert policies_equivalent(a, b)

    def test_statement_order_ignored(self):
        first = _doc(Sid="A")["Statement"][0]
        second = _doc(Sid="B", Effect="Deny")["Statement"][0]
        a = json.dumps({"Statement": [first, second]})
        b = json.dumps({"Statement": [second, first]})
        assert policies_equivalent(a, b)

    @pytest.mark.parametrize(
        "change",
        [{"Effect": "Deny"}, {"Action": ["x:Get", "x:Put"]}, {"Principal": "arn"}],
    )
    def test_different_documents(self, change):
        assert not policies_equivalent(json.dumps(_doc()), json.dumps(_doc(**change)))

    def test_invalid_json_falls_back_to_text(self):
        assert policies_equivalent("not json", "  not json\n")
        assert not policies_equivalent("not json", "other")

    def test_empty_versus_document(self):
        assert not policies_equivalent("", json.dumps(_doc()))


class TestNormalizePolicy:
    def test_compact_sorted_output(self):
        assert normalize_policy('{"b": 1, "a": [2]}') == '{"a":2,"b":1}'

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError):
            normalize_policy("{")
