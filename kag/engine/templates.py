"""
Outbound message templates suggested with each recommendation.

A template generator collaborator (typically an LLM call) can be injected to
produce nicer phrasing. Without one, a deterministic local formatter fills
``{{ variable }}`` tokens in a fixed per-category body. A collaborator that
raises is never masked: its exception propagates to the caller.
"""

import inspect
import re
from typing import Any, Awaitable, Callable, Optional, Union

from kag.models.enums import TemplateKey

TemplateGenerator = Callable[[str, dict[str, Any]], Union[Awaitable[Optional[str]], Optional[str]]]

DEFAULT_TEMPLATES: dict[TemplateKey, str] = {
    TemplateKey.WAITING: "\n".join([
        "Subject: Approval needed for stage {{stage_name}}",
        "",
        "Hi {{client_name}},",
        "",
        "We have been waiting for your sign-off on the \"{{stage_name}}\" stage for {{waiting_days}} days.",
        "Could you confirm the deliverables or share your feedback?",
        "Once we hear from you we will move straight on to the next stage.",
    ]),
    TemplateKey.SCOPE_CREEP: "\n".join([
        "Subject: Change request for additional scope",
        "",
        "Hi {{client_name}},",
        "",
        "Over the last week we logged {{out_of_scope_count}} request(s) outside the agreed scope.",
        "To keep the plan and budget transparent we suggest capturing them in a change request",
        "with an estimate and an updated timeline.",
        "Shall we send a draft today?",
    ]),
    TemplateKey.DELIVERY: "\n".join([
        "Subject: Delivery risk escalation for {{project_name}}",
        "",
        "Team,",
        "",
        "Current delivery risks:",
        "- open blockers: {{blockers_count}};",
        "- average blocker age: {{blockers_age_days}} days;",
        "- stage overdue by: {{stage_overdue_days}} days.",
        "",
        "Proposal: re-plan the stage, assign an owner per blocker and agree a recovery date.",
    ]),
    TemplateKey.FINANCE: "\n".join([
        "Subject: Budget and margin review",
        "",
        "Hi {{client_name}},",
        "",
        "Current financial indicators for the project:",
        "- burn rate: {{burn_rate}}x of plan;",
        "- margin risk: {{margin_risk_pct}}%.",
        "",
        "We propose a short review of priorities and budget to keep the project on track.",
    ]),
    TemplateKey.UPSELL: "\n".join([
        "Subject: Options to extend our engagement",
        "",
        "Hi {{client_name}},",
        "",
        "Based on current work we see a clear opportunity to expand:",
        "- identified need: {{need_signal}};",
        "- expected impact: {{expected_value}}.",
        "",
        "We can send a compact offer with Base / Plus / Pro options and an ROI estimate.",
        "If that works for you, we will share it by end of day.",
    ]),
}


def _sanitize_value(value: Any) -> str:
    return str("" if value is None else value).replace("\r", "").strip()


def render_template(body: str, variables: Optional[dict[str, Any]] = None) -> str:
    rendered = body or ""
    for key, value in (variables or {}).items():
        token = re.compile(r"\{\{\s*" + re.escape(str(key)) + r"\s*\}\}")
        replacement = _sanitize_value(value)
        rendered = token.sub(lambda _match: replacement, rendered)
    return rendered


def get_template_by_key(template_key: Union[TemplateKey, str]) -> str:
    """Template body for ``template_key``, or an empty string when unknown."""
    try:
        return DEFAULT_TEMPLATES[TemplateKey(template_key)]
    except ValueError:
        return ""


def build_suggested_template(
    template_key: Union[TemplateKey, str], variables: Optional[dict[str, Any]] = None
) -> str:
    body = get_template_by_key(template_key)
    if not body:
        return ""
    return render_template(body, variables)


async def generate_template(
    template_key: Union[TemplateKey, str],
    variables: Optional[dict[str, Any]] = None,
    llm_generate_template: Optional[TemplateGenerator] = None,
) -> str:
    """
    Produce the suggested message for a recommendation.

    Args:
        template_key: Which template to fill
        variables: Values substituted into the template
        llm_generate_template: Optional collaborator called as
            ``(template_key, variables)``; may be sync or async

    Returns:
        Collaborator output, or the locally rendered template when no
        collaborator is configured or it returned nothing
    """
    variables = dict(variables or {})
    key = template_key.value if isinstance(template_key, TemplateKey) else str(template_key)
    fallback = build_suggested_template(key, variables)
    if llm_generate_template is None:
        return fallback

    generated = llm_generate_template(key, variables)
    if inspect.isawaitable(generated):
        generated = await generated
    text = str(generated or "").strip()
    return text or fallback
