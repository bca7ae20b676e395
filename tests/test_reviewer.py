"""Tests for the interactive merge reviewer."""

from unittest.mock import MagicMock, patch

from tidy_kg.merge import MergeCandidateDetector
from tidy_kg.merge.reviewer import review_candidates
from tidy_kg.schema import Entity


def _candidates(n: int):
    entities = []
    for i in range(n):
        entities.append(Entity(id=f"e{i}a", name=f"Gateway{i} Alpha", category="systems"))
        entities.append(Entity(id=f"e{i}b", name=f"Gateway{i} Alphas", category="systems"))
    candidates = MergeCandidateDetector().find_candidates(entities)
    assert len(candidates) == n
    return candidates


class TestReviewCandidates:
    """Test the merge/skip/quit loop."""

    @patch("builtins.input", side_effect=["m", "m"])
    def test_merge_all(self, mock_input):
        """Merging every candidate calls the callback for each."""
        on_merge = MagicMock()
        stats = review_candidates(_candidates(2), on_merge)
        assert stats == {"merged": 2, "skipped": 0, "failed": 0}
        assert on_merge.call_count == 2

    @patch("builtins.input", side_effect=["s", "m"])
    def test_mixed(self, mock_input):
        """Skipped candidates are not merged."""
        candidates = _candidates(2)
        on_merge = MagicMock()
        stats = review_candidates(candidates, on_merge)
        assert stats == {"merged": 1, "skipped": 1, "failed": 0}
        on_merge.assert_called_once_with(candidates[1])

    @patch("builtins.input", side_effect=["m", "q"])
    def test_quit_skips_remaining(self, mock_input):
        """Quitting keeps earlier merges and skips the rest."""
        on_merge = MagicMock()
        stats = review_candidates(_candidates(3), on_merge)
        assert stats == {"merged": 1, "skipped": 2, "failed": 0}

    @patch("builtins.input", side_effect=["x", "", "m"])
    def test_invalid_keys_reprompt(self, mock_input):
        """Unknown keys are ignored until a valid one is pressed."""
        stats = review_candidates(_candidates(1), MagicMock())
        assert stats["merged"] == 1
        assert mock_input.call_count == 3

    @patch("builtins.input", side_effect=["m"])
    def test_failed_merge_counted(self, mock_input):
        """Callback errors are reported and counted, not raised."""
        on_merge = MagicMock(side_effect=ValueError("Entities already merged"))
        stats = review_candidates(_candidates(1), on_merge)
        assert stats == {"merged": 0, "skipped": 0, "failed": 1}

    @patch("builtins.input", side_effect=EOFError)
    def test_eof_quits(self, mock_input):
        """End of input behaves like quit."""
        stats = review_candidates(_candidates(2), MagicMock())
        assert stats == {"merged": 0, "skipped": 2, "failed": 0}

    def test_no_candidates(self):
        """Nothing to review returns zero counts."""
        assert review_candidates([], MagicMock()) == {"merged": 0, "skipped": 0, "failed": 0}
