import json

import pytest
from jinja2 import UndefinedError

from career_rag.common.errors import ConfigurationError
from career_rag.common.schemas import Chunk
from career_rag.generation.prompt_builder import PromptBuilder


def test_packaged_prompts_are_registered(prompt_builder):
    """
    Test that the packaged prompt file provides every prompt the pipeline uses.
    """
    assert prompt_builder.list_prompts() == ["relevance_rating", "roles_analysis", "section_analysis"]


def test_roles_analysis_renders_grounding_passages(prompt_builder):
    """
    Test that the roles prompt carries the resume, role and numbered passages.
    """
    prompt = prompt_builder.build(
        "roles_analysis",
        document_text="Skills: Python, SQL",
        job_description=None,
        role="data-analyst",
        profile={"skills": ["SQL", "Power BI"], "responsibilities": ["Report generation"]},
        passages=[
            {"id": "src1", "source": "industry_standards", "text": "SQL proficiency"},
            {"id": "src2", "source": "job_board", "text": "Tableau dashboards"},
        ],
    )

    assert "Skills: Python, SQL" in prompt
    assert "data-analyst" in prompt
    assert "Typical Skills: SQL, Power BI" in prompt
    assert "Typical Responsibilities: Report generation" in prompt
    assert "SQL proficiency" in prompt
    assert "Tableau dashboards" in prompt
    assert "src2" in prompt


def test_roles_analysis_omits_empty_profile(prompt_builder):
    """
    Test that a role without a profile renders no profile lines.
    """
    prompt = prompt_builder.build(
        "roles_analysis",
        document_text="Skills: Python",
        job_description=None,
        role="astronaut",
        profile={},
        passages=[],
    )

    assert "Typical Skills" not in prompt
    assert "Typical Responsibilities" not in prompt
    assert "Target Role: astronaut" in prompt


def test_section_analysis_renders_chunk_fields(prompt_builder):
    """
    Test that the section prompt renders the chunk type, lines and text.
    """
    chunk = Chunk(text="Python, SQL, Tableau", type="skills", line_range=(4, 5))

    prompt = prompt_builder.build("section_analysis", chunk=chunk, role="data-analyst", passages=[])

    assert "Python, SQL, Tableau" in prompt
    assert "skills" in prompt


def test_missing_variable_raises(prompt_builder):
    """
    Test that templates are strict about undefined variables.
    """
    with pytest.raises(UndefinedError):
        prompt_builder.build("roles_analysis", role="data-analyst")


def test_register_from_dict_validates_definition():
    """
    Test name validation and overwrite warnings.
    """
    builder = PromptBuilder()

    with pytest.raises(KeyError):
        builder.register_from_dict({"user": "hi"})
    with pytest.raises(ValueError):
        builder.register_from_dict({"name": "  ", "user": "hi"})
    with pytest.raises(TypeError):
        builder.register_from_dict({"name": "greet", "user": ["hi"]})

    assert builder.register_from_dict({"name": "greet", "user": "Hello {{ who }}"}) == "greet"
    with pytest.warns(UserWarning):
        builder.register_from_dict({"name": "greet", "system": "Be brief.", "user": "Hi {{ who }}"})

    assert builder.build("greet", who="Ada") == "Be brief.\nHi Ada"


def test_register_from_file_resolves_relative_to_base_dir(tmp_path):
    """
    Test that relative prompt paths resolve against ``base_dir``.
    """
    (tmp_path / "prompts.json").write_text(
        json.dumps([{"name": "a", "user": "A"}, {"name": "b", "user": "B"}]),
        encoding="utf-8",
    )

    builder = PromptBuilder.from_sources(["prompts.json"], base_dir=tmp_path)

    assert builder.list_prompts() == ["a", "b"]
    assert builder.build("b") == "B"


def test_register_from_source_errors(tmp_path):
    """
    Test missing files, wrong extensions and malformed package sources.
    """
    builder = PromptBuilder()
    (tmp_path / "prompts.yaml").write_text("name: a", encoding="utf-8")

    with pytest.raises(FileNotFoundError):
        builder.register_from_source("file:missing.json", base_dir=tmp_path)
    with pytest.raises(ValueError):
        builder.register_from_source(str(tmp_path / "prompts.yaml"))
    with pytest.raises(ValueError):
        builder.register_from_source("pkg:career_rag.generation")


def test_get_template_unknown_name():
    """
    Test that an unknown template name raises ``KeyError``.
    """
    with pytest.raises(KeyError):
        PromptBuilder().get_template("missing")


def test_template_variables(prompt_builder):
    """
    Test that a template reports the context names it renders.
    """
    variables = prompt_builder.get_template("roles_analysis").variables

    assert {"document_text", "role", "profile", "passages"} <= variables


def test_require_reports_missing_prompts(prompt_builder):
    """
    Test that absent prompts are a configuration error.
    """
    prompt_builder.require(["roles_analysis", "section_analysis"])

    with pytest.raises(ConfigurationError) as excinfo:
        PromptBuilder().require(["roles_analysis"])

    assert "roles_analysis" in str(excinfo.value)
