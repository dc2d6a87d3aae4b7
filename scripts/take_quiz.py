"""Take the placement quiz from the terminal and print the resulting learning path."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from client import (
    ApiError,
    ConceptListCache,
    LearningPathClient,
    QuizReconciler,
    QuizSubmissionError,
    SessionExpiredError,
)
from schemas import QuizAnswers

_LABELS = {"structured": "Structured Learning", "advanced": "Advanced Track"}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--base-url",
        type=str,
        default=os.getenv("LEARNPATH_API_URL", "http://localhost:8000"),
        help="Learning path service URL (default: $LEARNPATH_API_URL or http://localhost:8000)",
    )
    parser.add_argument("--user", required=True, help="Account identifier")
    parser.add_argument("--password", required=True, help="Account password")
    parser.add_argument("--register", action="store_true", help="Create the account before logging in")
    parser.add_argument("--name", default="", help="Display name used with --register")
    parser.add_argument("--coding-level", type=float, default=0, help="Current coding level (1-3)")
    parser.add_argument("--proficiency", type=float, default=0, help="Understanding of concepts (1-3)")
    parser.add_argument("--decision-making", type=float, default=0, help="Confidence in coding decisions (1-3)")
    parser.add_argument("--cgpa", type=float, default=0, help="Current CGPA or GPA (1-10)")
    parser.add_argument("--real-life", type=float, default=0, help="Applying concepts to real problems (1-3)")
    parser.add_argument("--language", default=None, help="Language the explanations should use")
    parser.add_argument("--verbose", action="store_true", help="Log reconciliation details")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    client = LearningPathClient(args.base_url)
    answers = QuizAnswers(
        coding_level_score=args.coding_level,
        coding_proficiency_score=args.proficiency,
        decision_making_score=args.decision_making,
        cgpa=args.cgpa,
        real_life_application_score=args.real_life,
    )

    try:
        if args.register:
            client.register(args.user, args.password, name=args.name)
        client.login(args.user, args.password)
        result = QuizReconciler(client).submit(answers, language=args.language)
        concepts = ConceptListCache(client).refresh()
    except SessionExpiredError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except (QuizSubmissionError, ApiError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(f"Your Learning Level: {_LABELS.get(result.category, result.category)} ({result.percent:.1f}%)")
    print(result.analysis)
    print()
    for position, concept in enumerate(concepts, start=1):
        marker = "x" if concept.get("is_completed") else " "
        print(f"[{marker}] {position:2d}. {concept['concept_name']} ({concept['difficulty_level']})")
    if not concepts:
        print("No concepts yet; your learning path is still being generated.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
