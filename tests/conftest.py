import pytest

from taggroup import PromptTemplate, VariableDefinition


def _make_template(template_id, tag, text="", variables=(), name=None, model="test/model"):
    return PromptTemplate(
        id=template_id,
        name=name or f"Template {template_id}",
        tags=[tag] if isinstance(tag, str) else list(tag),
        template_text=text,
        variable_defs=[
            v if isinstance(v, VariableDefinition) else VariableDefinition(name=v)
            for v in variables
        ],
        model=model,
    )


@pytest.fixture
def make_template():
    return _make_template


@pytest.fixture
def main_reference_templates():
    """Three templates of the ``mainReference`` group, deliberately out of order."""
    return [
        _make_template(
            "t2",
            "mainReference-002",
            "Describe {{characterName}} in a {{genre}} scene",
            variables=["characterName", "genre"],
            name="Scene Outline",
        ),
        _make_template(
            "t1",
            "mainReference-001",
            "Invent a protagonist for a {{genre}} film",
            variables=["genre"],
            name="Character Brief",
        ),
        _make_template(
            "t3",
            "mainReference-003",
            "Write a poster tagline for {{characterName}}",
            variables=["characterName"],
            name="Poster Tagline",
        ),
    ]
