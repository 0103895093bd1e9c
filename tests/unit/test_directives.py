from grant_agent.agent.directives import (
    parse_concept_intent,
    parse_directives,
    parse_inline_objects,
    parse_json_fences,
    parse_tool_fences,
    parse_verb_mentions,
)

TOOLS = ["searchOpportunities", "validateGrant", "generateConcept"]


def test_tool_fence_is_parsed() -> None:
    text = 'Sure.\n```tool\n{"tool": "searchOpportunities", "params": {"keywords": ["ai"]}}\n```'

    found = parse_tool_fences(text, TOOLS)

    assert len(found) == 1
    assert found[0].tool_name == "searchOpportunities"
    assert found[0].params == {"keywords": ["ai"]}


def test_multiple_tool_fences_keep_order() -> None:
    text = (
        '```tool\n{"tool": "searchOpportunities", "params": {}}\n```\n'
        '```tool\n{"tool": "validateGrant", "params": {"grantUrl": "https://x.eu"}}\n```'
    )

    found = parse_directives(text, TOOLS)

    assert [item.tool_name for item in found] == ["searchOpportunities", "validateGrant"]


def test_json_fence_requires_tool_and_params() -> None:
    assert parse_json_fences('```json\n{"tool": "validateGrant"}\n```', TOOLS) == []
    found = parse_json_fences('```json\n{"tool": "validateGrant", "params": {}}\n```', TOOLS)
    assert found[0].tool_name == "validateGrant"


def test_inline_object_with_nested_params() -> None:
    text = (
        'Calling {"tool": "searchOpportunities", "params": {"fundingTypes": '
        '{"internationalSubsidies": true}, "keywords": ["a}b"]}} now'
    )

    found = parse_inline_objects(text, TOOLS)

    assert len(found) == 1
    assert found[0].params["fundingTypes"] == {"internationalSubsidies": True}
    assert found[0].params["keywords"] == ["a}b"]


def test_verb_mention_scavenges_params() -> None:
    text = 'Voy a usar validateGrant con estos datos {"grantUrl": "https://a.eu"}'

    found = parse_verb_mentions(text, TOOLS)

    assert [item.tool_name for item in found] == ["validateGrant"]
    assert found[0].params == {"grantUrl": "https://a.eu"}


def test_verb_mention_returns_single_directive() -> None:
    text = "I will use validateGrant and then call searchOpportunities."

    found = parse_verb_mentions(text, TOOLS)

    assert len(found) == 1
    assert found[0].params == {}


def test_verb_mention_needs_nearby_verb() -> None:
    assert parse_verb_mentions("validateGrant is a tool I know about.", TOOLS) == []


def test_concept_intent_recovers_generate_concept() -> None:
    found = parse_concept_intent("Perfecto, voy a generar el concepto ahora mismo.", TOOLS)

    assert [item.tool_name for item in found] == ["generateConcept"]
    assert found[0].params == {}


def test_concept_intent_ignored_when_tool_unavailable() -> None:
    assert parse_concept_intent("Let me start generating the concept.", ["validateGrant"]) == []


def test_exact_form_short_circuits_later_strategies() -> None:
    text = (
        '```tool\n{"tool": "validateGrant", "params": {}}\n```\n'
        "I will also use searchOpportunities and then generate the concept."
    )

    found = parse_directives(text, TOOLS)

    assert [item.tool_name for item in found] == ["validateGrant"]


def test_plain_reply_has_no_directives() -> None:
    assert parse_directives("Hello! How can I help with your grant today?", TOOLS) == []


def test_naming_specialists_is_not_a_concept_request() -> None:
    text = (
        "Hola, soy DrWin. Coordino a Explora, Ponder, Inventa y Transcripto. "
        "¿En qué convocatoria estás pensando?"
    )

    assert parse_directives(text, TOOLS) == []


def test_contacting_inventa_recovers_generate_concept() -> None:
    found = parse_concept_intent("Voy a comunicarme con Inventa para preparar tu propuesta.", TOOLS)

    assert [item.tool_name for item in found] == ["generateConcept"]
