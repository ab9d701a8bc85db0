from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import dotenv

from ideaeval.core.config import load_config
from ideaeval.core.domain import classify_domain, map_domain_to_rubric_profile
from ideaeval.core.pipeline import EvaluationFailedError, evaluate_submission
from ideaeval.core.schemas import GroundingEnvelope, Submission

logger = logging.getLogger(__name__)


def run_evaluate(
    submission_path: str,
    config_path: str = "evaluator.toml",
    dry_run: bool | None = None,
    grounding: bool = True,
) -> dict:
    cfg = load_config(config_path)
    record = json.loads(Path(submission_path).read_text(encoding="utf-8"))
    submission = Submission.from_record(record)
    envelopes = [GroundingEnvelope.from_record(r) for r in record.get("grounding", []) or []]
    dry = cfg.dry_run_default if dry_run is None else dry_run
    report = asyncio.run(
        evaluate_submission(
            submission,
            config=cfg,
            envelopes=envelopes,
            fetchers=None if grounding else [],
            dry_run=dry,
        )
    )
    return report.to_record()


def run_classify(text: str, hint: str | None = None, config_path: str = "evaluator.toml") -> dict:
    cfg = load_config(config_path)
    result = classify_domain(text, hint, extra_keywords=cfg.domain_keywords)
    return {
        "domain": result.domain,
        "confidence": result.confidence,
        "matched_signals": result.matched_signals,
        "used_hint": result.used_hint,
        "rubric_profile": map_domain_to_rubric_profile(result.domain),
    }


def main() -> None:
    dotenv.load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    parser = argparse.ArgumentParser(description="Idea evaluation committee")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_eval = sub.add_parser("evaluate")
    p_eval.add_argument("--submission", required=True, help="JSON file with the submission fields")
    p_eval.add_argument("--config", default="evaluator.toml")
    p_eval.add_argument("--dry-run", action="store_true")
    p_eval.add_argument("--no-grounding", action="store_true")

    p_classify = sub.add_parser("classify")
    p_classify.add_argument("--text", required=True)
    p_classify.add_argument("--hint", default=None)
    p_classify.add_argument("--config", default="evaluator.toml")

    args = parser.parse_args()
    if args.cmd == "evaluate":
        try:
            output = run_evaluate(
                args.submission,
                config_path=args.config,
                dry_run=True if args.dry_run else None,
                grounding=not args.no_grounding,
            )
        except EvaluationFailedError as exc:
            logger.error(str(exc))
            print(json.dumps({"error": str(exc), "verification": exc.outcome.to_record()}, indent=2))
            sys.exit(2)
        print(json.dumps(output, indent=2, default=str))
    elif args.cmd == "classify":
        print(json.dumps(run_classify(args.text, args.hint, config_path=args.config), indent=2))


if __name__ == "__main__":
    main()
