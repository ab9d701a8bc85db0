import json

from ideaeval.jobs.cli import run_classify, run_evaluate


def test_run_classify_reports_profile(tmp_path) -> None:
    result = run_classify(
        "A Solana memecoin with a fair launch and community raids.",
        config_path=str(tmp_path / "missing.toml"),
    )
    assert result["domain"] == "memecoin"
    assert result["rubric_profile"] == "memecoin"
    assert result["used_hint"] is False
    assert result["matched_signals"]


def test_run_classify_honours_hint(tmp_path) -> None:
    result = run_classify("Something vague.", hint="saas", config_path=str(tmp_path / "missing.toml"))
    assert result["domain"] == "saas"
    assert result["used_hint"] is True


def test_run_evaluate_dry_run(tmp_path) -> None:
    submission = tmp_path / "submission.json"
    submission.write_text(
        json.dumps(
            {
                "description": "Yield aggregator that auto-compounds stablecoin liquidity pool rewards.",
                "project_type": "defi",
                "grounding": [
                    {
                        "payload": {"competitor_count": 15},
                        "source": "competitors",
                        "fetched_at": "2099-01-01T00:00:00+00:00",
                        "ttl_hours": 24,
                    }
                ],
            }
        ),
        encoding="utf-8",
    )
    record = run_evaluate(
        str(submission), config_path=str(tmp_path / "missing.toml"), dry_run=True, grounding=False
    )
    assert record["meta"]["classified_domain"] == "crypto_defi"
    assert record["meta"]["unavailable_sources"] == []
    assert record["freshness"]["total_source_count"] == 1
    assert 0 <= record["result"]["overall_score"] <= 100
    assert record["verification"]["fatal_failure"] is False
