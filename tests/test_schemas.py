from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from ideaeval.core.schemas import (
    EvaluationResult,
    GroundingEnvelope,
    SchemaError,
    Submission,
)


class SubmissionTests(unittest.TestCase):
    def test_submission_roundtrip(self) -> None:
        s = Submission(
            description="Fair-launch memecoin with a locked LP.",
            domain_hint="memecoin",
            team_size="small",
            resources=("designer", "community mod"),
            launch_liquidity_plan="LP locked for 12 months",
            token_address="So11111111111111111111111111111111111111112",
        )
        clone = Submission.from_record(s.to_record())
        self.assertEqual(s, clone)
        self.assertEqual(clone.resources, ("designer", "community mod"))

    def test_project_type_alias(self) -> None:
        s = Submission.from_record({"description": "x", "project_type": "defi"})
        self.assertEqual(s.domain_hint, "defi")
        self.assertEqual(s.team_size, "solo")
        self.assertEqual(s.resources, ())


class EvaluationResultTests(unittest.TestCase):
    def test_lenient_payload(self) -> None:
        result = EvaluationResult.from_payload(
            {
                "overall_score": "72",
                "technical": {"feasibility_score": "65%", "key_risks": "single risk"},
                "execution": {"complexity_level": "EXTREME"},
                "sub_scores": {"market_opportunity": "7", "junk": "n/a"},
            }
        )
        self.assertEqual(result.overall_score, 72.0)
        self.assertEqual(result.technical.feasibility_score, 65.0)
        self.assertEqual(result.execution.complexity_level, "medium")
        self.assertEqual(result.sub_scores, {"market_opportunity": 7.0})
        self.assertEqual(result.market.competitor_signals, [])
        self.assertIsNone(result.crypto_native_checks)

    def test_out_of_range_scores_are_kept(self) -> None:
        result = EvaluationResult.from_payload({"overall_score": -5, "technical": {"feasibility_score": 140}})
        self.assertEqual(result.overall_score, -5.0)
        self.assertEqual(result.technical.feasibility_score, 140.0)

    def test_unreadable_payloads_raise(self) -> None:
        for payload in (["not", "a", "dict"], {}, {"overall_score": "high"}, {"overall_score": True}):
            with self.subTest(payload=payload):
                with self.assertRaises(SchemaError):
                    EvaluationResult.from_payload(payload)

    def test_copy_is_deep(self) -> None:
        result = EvaluationResult.from_payload({"overall_score": 50, "reasoning_steps": ["a"]})
        clone = result.copy()
        clone.reasoning_steps.append("b")
        self.assertEqual(result.reasoning_steps, ["a"])

    def test_record_roundtrip(self) -> None:
        result = EvaluationResult.from_payload(
            {
                "overall_score": 61,
                "summary": {"title": "T", "main_verdict": "Build it"},
                "crypto_native_checks": {"rug_pull_risk": "HIGH", "is_anon_team": True},
                "launch_readiness_score": 44,
                "launch_readiness_label": "Medium",
            }
        )
        clone = EvaluationResult.from_record(result.to_record())
        self.assertEqual(result, clone)
        self.assertEqual(clone.crypto_native_checks.rug_pull_risk, "high")
        self.assertEqual(clone.launch_readiness_label, "medium")


class GroundingEnvelopeTests(unittest.TestCase):
    def test_staleness(self) -> None:
        now = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)
        envelope = GroundingEnvelope({"tvl_usd": 1e9}, "defillama", now - timedelta(hours=30), 24.0)
        self.assertAlmostEqual(envelope.age_hours(now), 30.0)
        self.assertTrue(envelope.is_stale(now))
        self.assertFalse(envelope.is_stale(now - timedelta(hours=10)))

    def test_future_fetch_time_counts_as_fresh(self) -> None:
        now = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)
        envelope = GroundingEnvelope({}, "x", now + timedelta(hours=2), 1.0)
        self.assertEqual(envelope.age_hours(now), 0.0)

    def test_envelope_roundtrip(self) -> None:
        envelope = GroundingEnvelope(
            {"btc_dominance": 52.0}, "market_snapshot", datetime(2025, 3, 1, tzinfo=timezone.utc), 1.0
        )
        clone = GroundingEnvelope.from_record(envelope.to_record())
        self.assertEqual(envelope, clone)


if __name__ == "__main__":
    unittest.main()
