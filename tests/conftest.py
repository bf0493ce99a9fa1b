"""Shared fixtures."""

import pytest

from fakes import build_hit, build_record


@pytest.fixture
def make_hit():
    return build_hit


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def example_hits():
    """Semantic and keyword hits of the worked example: id1 both, id2 keyword only, id3 semantic only."""
    semantic = [build_hit(1, 0.89, document_id=1), build_hit(3, 0.82, document_id=2)]
    keyword = [build_hit(2, 0.95, document_id=1), build_hit(1, 0.88, document_id=1)]
    return semantic, keyword
