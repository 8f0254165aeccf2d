"""Tests for citation marker scanning and resolution."""

from __future__ import annotations

from answer_stream.config import Settings
from answer_stream.rag.citations import CitationResolver, MarkerGrammar, scan_markers
from answer_stream.rag.registry import SourceRegistry


def _registry(*sources: dict) -> SourceRegistry:
    registry = SourceRegistry()
    for source in sources:
        registry.upsert(source)
    return registry


def test_scan_recognizes_every_grammar_in_order() -> None:
    """All marker syntaxes are found in one left-to-right pass."""

    text = 'See [a.pdf#page=3], [Document 2, Page 4], <cite index="0-1">claim</cite> and [b.docx, Page 5].'
    markers = scan_markers(text)

    assert [marker.grammar for marker in markers] == [
        MarkerGrammar.FILE_NAME,
        MarkerGrammar.DOCUMENT_INDEX,
        MarkerGrammar.CITE_TAG,
        MarkerGrammar.FILE_NAME,
    ]
    assert [marker.page for marker in markers] == [3, 4, None, 5]
    assert markers[0].file_name == "a.pdf"
    assert markers[1].position == 1
    assert markers[2].position == 0
    assert markers[2].inner == "claim"


def test_scan_ignores_links_and_numbers() -> None:
    """Markdown links and bracketed numbers are not citation markers."""

    assert scan_markers("Read [a.pdf](https://example.com/a.pdf) and [3.14].") == []


def test_document_index_resolves_one_based() -> None:
    """`[Document 2]` points at the second registered source."""

    resolver = CitationResolver(_registry({"id": "s1", "fileName": "one.pdf"}, {"id": "s2", "fileName": "two.pdf"}))

    text, citations = resolver.resolve_text("The report [Document 2] states growth.")

    assert text == "The report [1] states growth."
    assert len(citations) == 1
    assert citations[0].resolved_source_id == "s2"
    assert citations[0].file_name == "two.pdf"
    assert citations[0].index == 1


def test_repeated_source_reuses_index() -> None:
    """Every marker for an already cited source gets the same index."""

    registry = _registry({"id": "a", "fileName": "a.pdf"}, {"id": "b", "fileName": "b.pdf"})
    resolver = CitationResolver(registry)

    text, citations = resolver.resolve_text(
        'First [Document 2], again [b.pdf], then <cite index="0">alpha</cite> and [Document 1].'
    )

    assert text == "First [1], again [1], then alpha[2] and [2]."
    assert [(citation.index, citation.resolved_source_id) for citation in citations] == [(1, "b"), (2, "a")]


def test_unresolved_marker_becomes_synthetic_citation() -> None:
    """Markers without a matching source are kept, keyed by their label."""

    resolver = CitationResolver(SourceRegistry())

    text, citations = resolver.resolve_text("See [missing.pdf#page=2] and [missing.pdf#page=2] and [Document 9].")

    assert text == "See [1] and [1] and [2]."
    first, second = citations
    assert (first.id, first.file_name, first.page, first.resolved_source_id) == (
        "missing.pdf#page=2",
        "missing.pdf",
        2,
        None,
    )
    assert (second.id, second.file_name, second.index) == ("Document 9", "Document 9", 2)


def test_registered_citation_keeps_arrival_index() -> None:
    """Explicit citations are numbered on arrival; markers reuse the number."""

    registry = _registry({"fileName": "a.pdf"}, {"fileName": "b.pdf"})
    resolver = CitationResolver(registry)

    citation = resolver.register({"fileName": "a.pdf", "page": "4"}, "file-a.pdf")
    text, citations = resolver.resolve_text("[b.pdf] then [a.pdf]")

    assert citation is not None
    assert citation.index == 1
    assert citation.page == 4
    assert text == "[2] then [1]"
    assert [citation.resolved_source_id for citation in citations] == ["file-a.pdf", "file-b.pdf"]


def test_register_for_unknown_source_is_ignored() -> None:
    """Registering against an id the registry does not hold allocates nothing."""

    resolver = CitationResolver(SourceRegistry())

    assert resolver.register({"fileName": "x.pdf"}, "file-x.pdf") is None
    assert resolver.citations() == []


def test_retry_binds_late_sources_keeping_index() -> None:
    """A source registered after resolution binds the synthetic citation."""

    registry = SourceRegistry()
    resolver = CitationResolver(registry)
    resolver.resolve_text("Per [late.pdf].")

    registry.upsert({"fileName": "late.pdf", "url": "https://example.com/late.pdf"})

    assert resolver.retry_unresolved() == 1
    assert resolver.retry_unresolved() == 0
    (citation,) = resolver.citations()
    assert citation.index == 1
    assert citation.resolved_source_id == "file-late.pdf"
    assert citation.url == "https://example.com/late.pdf"


def test_reference_template_is_configurable() -> None:
    """The inline reference format comes from settings."""

    resolver = CitationResolver(
        _registry({"id": "a", "fileName": "a.pdf"}),
        config=Settings(CITATION_REFERENCE_TEMPLATE="^{index}"),
    )

    text, _citations = resolver.resolve_text("Claim [a.pdf].")

    assert text == "Claim ^1."
