"""Final article assembly: markdown order, image placement, statistics."""

from agp.jobs.models import JobDescriptor, JobState
from agp.pipeline.assembler import assemble_article, build_markdown, compute_statistics, render_html
from agp.schemas.agents import (
    ConclusionOutput,
    GeneratedImage,
    ImageOutput,
    MetaOutput,
    SectionOutput,
    StrategyOutput,
    TaxonomyTerm,
    WritingOutput,
)


def _state(with_images=True) -> JobState:
    sections = [
        SectionOutput(index=1, heading="Second", markdown="## Second\n\nTwo."),
        SectionOutput(index=0, heading="First", markdown="## First\n\nOne."),
    ]
    image = ImageOutput()
    if with_images:
        image = ImageOutput(
            featured_image=GeneratedImage(prompt="p", alt_text="hero", url="https://img/hero.png"),
            content_images=[
                GeneratedImage(prompt="p", alt_text="second", section_index=1, url="https://img/2.png"),
                GeneratedImage(prompt="p", alt_text="first", section_index=0),  # never rendered
            ],
        )
    return JobState(
        strategy=StrategyOutput(selected_title="Chosen"),
        writing=WritingOutput(
            introduction=SectionOutput(index=0, markdown="Intro text."),
            sections=sections,
        ),
        conclusion=ConclusionOutput(markdown="## Wrap up\n\nDone."),
        meta=MetaOutput(
            title="Meta title", description="d", slug="chosen", keywords=["k1"],
            categories=[TaxonomyTerm(name="Brewing", slug="brewing", score=0.9)],
            tags=[TaxonomyTerm(name="Pour Over", slug="pour-over"), TaxonomyTerm(name="kettle", slug="kettle", score=0.8)],
        ),
        image=image,
    )


def test_markdown_order_and_images():
    md = build_markdown("Chosen", _state())
    assert md.startswith("# Chosen\n\n![hero](https://img/hero.png)\n\nIntro text.")
    assert md.index("## First") < md.index("## Second") < md.index("## Wrap up")
    # Rendered section image directly under its heading
    assert "## Second\n\n![second](https://img/2.png)\n\nTwo." in md
    # No url, no image
    assert "![first]" not in md
    assert md.endswith("Done.\n")


def test_markdown_without_images():
    md = build_markdown("Chosen", _state(with_images=False))
    assert "![" not in md
    assert md.startswith("# Chosen\n\nIntro text.")


def test_statistics():
    md = "# T\n\n![x](u)\n\nOne two three.\n\n## H\n\nFour five.\n"
    stats = compute_statistics(md, 1)
    assert stats.paragraph_count == 2
    assert stats.section_count == 1
    assert stats.reading_time == 1
    long_md = " ".join(["word"] * 401)
    assert compute_statistics(long_md, 0).reading_time == 3


def test_render_html_tables():
    html = render_html("| a | b |\n|---|---|\n| 1 | 2 |\n")
    assert "<table>" in html


def test_assemble_article():
    d = JobDescriptor(job_id="job_1", company_id="co_1", keywords=["coffee"], target_language="ja")
    article = assemble_article(d, _state(), tokens_used=42)
    assert article.title == "Chosen"
    assert article.slug == "chosen"
    assert article.keywords == ["k1"]
    assert article.language == "ja"
    assert article.tokens_used == 42
    assert article.statistics.section_count == 2
    assert article.featured_image.url == "https://img/hero.png"
    assert len(article.content_images) == 2
    assert "<h1>Chosen</h1>" in article.html
    assert [c.slug for c in article.categories] == ["brewing"]
    assert [t.name for t in article.tags] == ["Pour Over", "kettle"]


def test_title_falls_back_to_meta_then_descriptor():
    d = JobDescriptor(job_id="job_1", company_id="co_1", keywords=["coffee"])
    state = _state()
    state.strategy = StrategyOutput()
    assert assemble_article(d, state).title == "Meta title"
    state.meta = None
    article = assemble_article(d, state)
    assert article.title == "coffee"
    assert article.keywords == ["coffee"]
    assert article.categories == [] and article.tags == []
