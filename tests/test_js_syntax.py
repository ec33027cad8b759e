"""
Board script syntax guard.

A syntax error anywhere in pipeline.js means the browser drops the whole
script and drag and drop silently stops working.
"""
from pathlib import Path

import esprima

SCRIPT = Path(__file__).parent.parent / 'crm_app' / 'static' / 'crm_app' / 'pipeline.js'


def test_pipeline_script_parses():
    esprima.parseScript(SCRIPT.read_text())


def test_pipeline_script_posts_json_with_csrf():
    source = SCRIPT.read_text()
    assert "'X-CSRFToken'" in source
    assert "'application/json'" in source


def test_pipeline_script_skips_same_stage_drop():
    """The client-side guard mirrors the server: no request for a same-column drop."""
    source = SCRIPT.read_text()
    assert "card.getAttribute('data-stage') === newStage" in source


def test_broken_operator_is_detected():
    """Sanity check that the parser really rejects malformed operators."""
    import pytest
    with pytest.raises(esprima.Error):
        esprima.parseScript('const isDirty = (curr ! == orig);')
