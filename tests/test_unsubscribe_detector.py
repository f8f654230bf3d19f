"""
Tests for unsubscribe target detection.

Scoring is exercised against hand-built LinkCandidate fixtures; extraction
and the full detector against HTML.
"""

import pytest

from mailsweep.email_processor.types import DetectionResult, LinkCandidate
from mailsweep.email_processor.unsubscribe_detector import (
    UnsubscribeDetector, extract_link_candidates, parse_header_target, rank_candidates, score_candidate
)


class TestHeaderParsing:

    def test_http_preferred_over_mailto(self):
        header = '<mailto:unsub@example.com?subject=unsubscribe>, <https://example.com/u?id=1>'
        assert parse_header_target(header) == 'https://example.com/u?id=1'

    def test_mailto_only(self):
        assert parse_header_target('<mailto:unsub@example.com>') == 'mailto:unsub@example.com'

    @pytest.mark.parametrize('header', ['', 'https://example.com/u', '<>', '<ftp://example.com/u>'])
    def test_nothing_usable(self, header):
        assert parse_header_target(header) is None


class TestScoring:

    def test_weights(self):
        assert score_candidate(LinkCandidate(href='https://x.com/unsubscribe')) == 3
        assert score_candidate(LinkCandidate(href='https://x.com/a', text='Unsubscribe')) == 5
        assert score_candidate(LinkCandidate(href='https://x.com/a', attributes=('unsubscribe-link',))) == 2
        assert score_candidate(LinkCandidate(
            href='https://x.com/unsubscribe', text='Opt out', attributes=('optout',), in_footer=True
        )) == 11

    def test_footer_alone_does_not_qualify(self):
        assert score_candidate(LinkCandidate(href='https://x.com/about', text='About us', in_footer=True)) == 0

    @pytest.mark.parametrize('href', ['/unsubscribe', 'javascript:unsubscribe()', 'mailto:unsubscribe@x.com'])
    def test_non_http_never_scores(self, href):
        assert score_candidate(LinkCandidate(href=href, text='Unsubscribe', in_footer=True)) == 0

    def test_highest_score_wins(self):
        weak = LinkCandidate(href='https://x.com/unsubscribe', position=0)
        strong = LinkCandidate(href='https://x.com/a', text='Unsubscribe here', position=1)
        assert rank_candidates([weak, strong])[0].candidate is strong

    def test_ties_resolve_to_document_order(self):
        first = LinkCandidate(href='https://x.com/1', text='unsubscribe', position=0)
        second = LinkCandidate(href='https://x.com/2', text='opt out', position=1)
        ranked = rank_candidates([second, first])
        assert ranked[0].candidate is first

    def test_no_qualifying_candidates(self):
        assert rank_candidates([LinkCandidate(href='https://x.com/shop', text='Shop now')]) == []


class TestExtraction:

    def test_footer_detection_by_tag_and_class(self):
        html = """
        <div class="content"><a href="https://x.com/a">Read more</a></div>
        <footer><a href="https://x.com/b">Unsubscribe</a></footer>
        <div id="email-footer"><a href="https://x.com/c">Preferences</a></div>
        """
        candidates = extract_link_candidates(html)
        assert [c.in_footer for c in candidates] == [False, True, True]
        assert [c.position for c in candidates] == [0, 1, 2]
        assert candidates[1].text == 'Unsubscribe'

    def test_attributes_collected(self):
        candidates = extract_link_candidates(
            '<a href="https://x.com/a" class="btn unsub" style="color:red" id="optout">x</a>'
        )
        assert candidates[0].attributes == ('btn unsub', 'color:red', 'optout')

    def test_anchor_without_href_is_ignored(self):
        assert extract_link_candidates('<a name="top">Unsubscribe</a>') == []

    def test_empty_body(self):
        assert extract_link_candidates('') == []


class TestDetector:

    @pytest.fixture
    def detector(self):
        return UnsubscribeDetector()

    def test_header_with_http_and_mailto(self, detector):
        result = detector.detect('<p>body</p>', {
            'List-Unsubscribe': '<mailto:u@example.com>, <https://example.com/unsub>'
        })
        assert result.target == 'https://example.com/unsub'
        assert result.method == 'header'

    def test_header_lookup_is_case_insensitive(self, detector):
        result = detector.detect('', {'list-unsubscribe': '<https://example.com/unsub>'})
        assert result.method == 'header'

    def test_malformed_header_falls_through_to_footer_link(self, detector):
        html = '<p>Hi</p><footer><a href="https://news.example.com/opt-out?u=1">Opt out</a></footer>'
        result = detector.detect(html, {'List-Unsubscribe': 'not-a-valid-header'})
        assert result.target == 'https://news.example.com/opt-out?u=1'
        assert result.method == 'link'

    def test_relative_and_script_links_never_selected(self, detector):
        html = '<a href="/unsubscribe">Unsubscribe</a><a href="javascript:void(0)">Unsubscribe</a>'
        result = detector.detect(html, {})
        assert result.method == 'none'
        assert result.target is None

    def test_nothing_found(self, detector):
        result = detector.detect('<p>No links here</p>', {})
        assert result == DetectionResult()
        assert not result.found

    def test_result_invariant(self):
        with pytest.raises(ValueError):
            DetectionResult(target='https://x.com', method='none')
        with pytest.raises(ValueError):
            DetectionResult(target=None, method='link')
