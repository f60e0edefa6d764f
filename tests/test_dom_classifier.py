import asyncio

from fakes import FakePage
from pagerunner.dom_classifier import CLASSIFIER_SCRIPT, DomClassifier, parse_elements


RAW = [
    {"selector": "#go", "type": "clickable", "tag": "BUTTON", "id": "go", "text": "Go"},
    {"selector": "input[name=\"q\"]", "type": "writeable", "tag": "input"},
    {"selector": "#go", "type": "clickable", "tag": "button"},
    {"selector": "#upload", "type": "uploadable", "tag": "input", "id": "upload"},
    {"selector": "", "type": "clickable", "tag": "a"},
    {"selector": "div.odd", "type": "mystery", "tag": "div"},
    "garbage",
]


def test_parse_elements_dedupes_and_normalises():
    elements = parse_elements(RAW)
    assert [element.selector for element in elements] == ["#go", "input[name=\"q\"]", "#upload", "div.odd"]
    assert elements[0].tag == "button"
    assert elements[0].as_dict() == {"selector": "#go", "type": "clickable", "tag": "button", "id": "go", "text": "Go"}
    assert elements[1].as_dict() == {"selector": "input[name=\"q\"]", "type": "writeable", "tag": "input"}
    assert elements[3].type == "other"


def test_parse_elements_respects_limit_and_bad_payloads():
    assert len(parse_elements(RAW, max_elements=2)) == 2
    assert parse_elements(None) == []
    assert parse_elements({"selector": "#go"}) == []


def test_classify_passes_json_options_only():
    page = FakePage(classifier_output=RAW)
    classifier = DomClassifier(max_elements=7)
    elements = asyncio.run(classifier.classify(page))
    assert len(elements) == 4
    script, options = page.evaluated[-1]
    assert script == CLASSIFIER_SCRIPT
    assert options == {"maxElements": 7, "fallbackAttr": "data-pr-id"}


def test_clickable_and_writeable_filters():
    page = FakePage(classifier_output=RAW)
    classifier = DomClassifier()
    clickable = asyncio.run(classifier.clickable(page))
    writeable = asyncio.run(classifier.writeable(page))
    assert [element.selector for element in clickable] == ["#go"]
    assert [element.selector for element in writeable] == ["input[name=\"q\"]"]


def test_classify_rescans_on_every_call():
    page = FakePage(classifier_output=RAW[:1])
    classifier = DomClassifier()
    asyncio.run(classifier.classify(page))
    page.classifier_output = RAW[:2]
    second = asyncio.run(classifier.classify(page))
    assert len(second) == 2
    assert len(page.evaluated) == 2


def test_script_never_reads_locale_attributes_for_labels():
    label_section = CLASSIFIER_SCRIPT.split("const labelFor")[1].split("const results")[0]
    for attribute in ("aria-label", "title", "placeholder"):
        assert attribute not in label_section


def test_pointer_events_none_is_rejected_before_any_category():
    classify_section = CLASSIFIER_SCRIPT.split("const classify")[1].split("const structuralPath")[0]
    guard = classify_section.index("pointerEvents === 'none'")
    assert guard < classify_section.index("'writeable'")
    assert guard < classify_section.index("'uploadable'")


def test_fallback_marker_is_checked_for_uniqueness():
    fallback_section = CLASSIFIER_SCRIPT.split("const path = structuralPath")[1].split("const looksLikeScript")[0]
    assert "isUnique(markerSelector(existing), element)" in fallback_section
    assert "isUnique(markerSelector(marker), element)" in fallback_section
