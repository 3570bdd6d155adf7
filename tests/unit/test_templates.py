"""Unit tests for local template rendering and the generator fallback."""

import asyncio

import pytest

from kag.engine.templates import (
    DEFAULT_TEMPLATES,
    build_suggested_template,
    generate_template,
    get_template_by_key,
    render_template,
)
from kag.models.enums import TemplateKey


class TestRenderTemplate:
    def test_render_replaces_tokens_with_optional_spaces(self):
        assert render_template("Hi {{ name }} / {{name}}", {"name": "Ana"}) == "Hi Ana / Ana"

    def test_render_leaves_unknown_tokens(self):
        assert render_template("Hi {{name}} {{other}}", {"name": "Ana"}) == "Hi Ana {{other}}"

    def test_render_none_becomes_empty_and_strips(self):
        assert render_template("[{{a}}][{{b}}]", {"a": None, "b": "  x\r "}) == "[][x]"

    def test_render_value_with_backslashes_is_literal(self):
        assert render_template("{{path}}", {"path": r"C:\new\1"}) == r"C:\new\1"

    def test_render_empty_body(self):
        assert render_template("", {"a": 1}) == ""


class TestTemplateLookup:
    def test_every_template_key_has_a_body(self):
        assert set(DEFAULT_TEMPLATES) == set(TemplateKey)

    def test_get_template_by_string_key(self):
        assert get_template_by_key("finance_risk_review") == DEFAULT_TEMPLATES[TemplateKey.FINANCE]

    def test_get_template_unknown_key_is_empty(self):
        assert get_template_by_key("nope") == ""
        assert build_suggested_template("nope", {"a": 1}) == ""

    def test_build_suggested_template_fills_variables(self):
        body = build_suggested_template(TemplateKey.DELIVERY, {
            "project_name": "Atlas",
            "blockers_count": 4,
            "blockers_age_days": "6.0",
            "stage_overdue_days": "0.0",
        })
        assert "Delivery risk escalation for Atlas" in body
        assert "- open blockers: 4;" in body


class TestGenerateTemplate:
    def test_generate_without_collaborator_uses_local_template(self):
        text = asyncio.run(generate_template(TemplateKey.UPSELL, {"client_name": "Acme"}))
        assert text.startswith("Subject: Options to extend our engagement")
        assert "Hi Acme," in text

    def test_generate_none_result_falls_back(self):
        text = asyncio.run(generate_template(
            TemplateKey.WAITING, {"client_name": "Acme"}, lambda key, variables: None
        ))
        assert "Hi Acme," in text

    def test_generate_strips_collaborator_output(self):
        async def generator(key, variables):
            return "  hello  \n"

        assert asyncio.run(generate_template(TemplateKey.WAITING, {}, generator)) == "hello"

    def test_generate_collaborator_receives_string_key(self):
        seen = []

        def generator(key, variables):
            seen.append(key)
            return "ok"

        asyncio.run(generate_template(TemplateKey.SCOPE_CREEP, {}, generator))
        assert seen == ["scope_creep_change_request"]

    def test_generate_collaborator_error_propagates(self):
        def generator(key, variables):
            raise ValueError("bad prompt")

        with pytest.raises(ValueError, match="bad prompt"):
            asyncio.run(generate_template(TemplateKey.FINANCE, {}, generator))
