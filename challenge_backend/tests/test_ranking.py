import unittest

from challenge_backend.db import InMemoryDbClient, PostgresDbClient
from challenge_backend.ledger import SubmissionLedger, SubmissionOptions
from challenge_backend.ranking import RankingEngine, competition_rank


class CompetitionRankTests(unittest.TestCase):
    def test_ties_share_rank_and_next_rank_skips(self):
        entries = competition_rank([("a", 90), ("b", 80), ("c", 80), ("d", 70)])
        self.assertEqual([e.rank for e in entries], [1, 2, 2, 4])

    def test_leading_tie(self):
        entries = competition_rank([("c", 40), ("a", 50), ("b", 50)])
        self.assertEqual([(e.username, e.rank) for e in entries], [("a", 1), ("b", 1), ("c", 3)])

    def test_empty(self):
        self.assertEqual(competition_rank([]), [])


class RankingCases:
    def make_db(self):
        raise NotImplementedError

    def setUp(self):
        self.db = self.make_db()
        self.engine = RankingEngine(self.db)

    def _seed(self, scores):
        ledger = SubmissionLedger(self.db)
        rows = []
        for username, points in scores:
            user = self.db.create_user(username, f"{username}@example.com", "hash")
            key = f"q1/{username}-key-solution.py"
            ledger.record_or_update(user.id, SubmissionOptions(question="q1", file_key=key))
            rows.append((f"{username}-key", points))
        ledger.bulk_update_points(rows)

    def test_ranks_by_cumulative_points(self):
        self._seed([("dave", 70), ("anna", 90), ("bert", 80), ("carl", 80)])
        entries = self.engine.top_scores()
        self.assertEqual(
            [(e.username, e.points, e.rank) for e in entries],
            [("anna", 90, 1), ("bert", 80, 2), ("carl", 80, 2), ("dave", 70, 4)],
        )

    def test_limit_truncates_after_ranking(self):
        self._seed([("anna", 50), ("bert", 50), ("carl", 40), ("dave", 30)])
        entries = self.engine.top_scores(limit=3)
        self.assertEqual(len(entries), 3)
        self.assertEqual([e.rank for e in entries], [1, 1, 3])
        self.assertEqual([e.points for e in entries], [50, 50, 40])

    def test_no_users(self):
        self.assertEqual(self.engine.top_scores(), [])


class InMemoryRankingTests(RankingCases, unittest.TestCase):
    def make_db(self):
        return InMemoryDbClient()


class SqlRankingTests(RankingCases, unittest.TestCase):
    def make_db(self):
        return PostgresDbClient("sqlite+pysqlite:///:memory:")


class UnavailableDb(InMemoryDbClient):
    def rank_users(self, limit=10):
        raise ConnectionError("connection refused")


class RankingFailureTests(unittest.TestCase):
    def test_failure_returns_none(self):
        engine = RankingEngine(UnavailableDb())
        with self.assertLogs("challenge_backend.ranking", level="ERROR"):
            self.assertIsNone(engine.top_scores())


if __name__ == "__main__":
    unittest.main()
