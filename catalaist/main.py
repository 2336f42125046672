"""CLI entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from typing import Callable, List, Sequence

from .core import (
    CatalaistError,
    Config,
    ConfigError,
    ConversationController,
    LLMResponseError,
    SessionManager,
    TransformationCategory,
    ValidationError,
    load_config,
)
from .core.clarification import ClarificationService
from .core.classification import ClassificationService
from .core.conversation import ContextSummarizer, LoopDetector, TurnOutcome
from .core.matrix import DecisionMatrixEvaluator
from .core.models import ClassificationResult
from .core.prompts import PromptLibrary
from .core.storage import AuditLog, SessionStore
from .llm import BedrockProvider, LLMProvider, OpenAIProvider

LOGGER = logging.getLogger(__name__)

MAX_TURN_RETRIES = 2


def cli(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(
        prog="catalaist",
        description="CatalAIst - classify business processes into transformation categories",
    )
    parser.add_argument("--config-dir", help="Directory holding .env and YAML settings (default ~/.catalaist)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    classify_parser = subparsers.add_parser("classify", help="Classify a process through a guided interview")
    classify_parser.add_argument("--description", help="Process description (prompted for when omitted)")

    show_parser = subparsers.add_parser("show", help="Print a stored session")
    show_parser.add_argument("session_id")

    feedback_parser = subparsers.add_parser("feedback", help="Confirm or correct a classification")
    feedback_parser.add_argument("session_id")
    feedback_group = feedback_parser.add_mutually_exclusive_group(required=True)
    feedback_group.add_argument("--confirm", action="store_true", help="The classification was right")
    feedback_group.add_argument(
        "--correct",
        metavar="CATEGORY",
        choices=TransformationCategory.values(),
        help="The category it should have been",
    )

    subparsers.add_parser("matrix", help="Print the active decision matrix rules")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config_dir)
        log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.getLogger().setLevel(getattr(logging, log_level_name, logging.INFO))

        if args.command == "classify":
            return asyncio.run(_run_classify(config, args.description))
        if args.command == "show":
            return _run_show(config, args.session_id)
        if args.command == "feedback":
            return _run_feedback(config, args.session_id, args.confirm, args.correct)
        return _run_matrix(config)
    except ConfigError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return 1
    except CatalaistError as exc:
        LOGGER.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user")
        return 130


def build_provider(config: Config) -> LLMProvider:
    if config.provider == "bedrock":
        return BedrockProvider(config.aws_region)
    return OpenAIProvider(config.openai_api_key)


def build_session_manager(config: Config, provider: LLMProvider) -> SessionManager:
    """Wire services, controller and storage from configuration."""
    settings = config.conversation
    prompts = PromptLibrary(config.prompts_dir, config.strategic_questions)
    classifier = ClassificationService(
        provider,
        config.model,
        prompts,
        manual_review_threshold=settings.manual_review_threshold,
        auto_classify_threshold=settings.auto_classify_threshold,
    )
    clarifier = ClarificationService(
        provider,
        config.model,
        prompts,
        max_questions=settings.max_questions,
        min_confidence=settings.min_clarify_confidence,
        max_confidence=settings.max_clarify_confidence,
    )
    controller = ConversationController(
        classifier,
        clarifier,
        summarizer=ContextSummarizer(
            recent_count=settings.recent_exchanges,
            summarize_after=settings.summarize_after,
        ),
        loop_detector=LoopDetector(settings.loop_threshold, settings.similarity_threshold),
        evaluator=DecisionMatrixEvaluator(),
        matrix=config.decision_matrix,
        audit_log=AuditLog(config.data_dir),
        llm_provider=config.provider,
        mask_pii=settings.mask_pii,
    )
    return SessionManager(controller, SessionStore(config.data_dir))


async def _run_classify(
    config: Config,
    description: str | None,
    ask: Callable[[str], str] | None = None,
    provider: LLMProvider | None = None,
) -> int:
    ask = ask or input
    if config.voice_enabled:
        LOGGER.info("Voice capability is enabled but the CLI only supports text input")

    manager = build_session_manager(config, provider or build_provider(config))
    text = description or ask("Describe the business process:\n> ")

    try:
        state, outcome = await manager.begin(text)
    except ValidationError as exc:
        print(f"Error: {exc}")
        return 1

    print(f"\nSession {state.session_id}")
    while not outcome.is_terminal:
        answers = _ask_questions(outcome, ask)
        try:
            outcome = await _answer_with_retry(manager, state.session_id, answers)
        except ValidationError as exc:
            print(f"Error: {exc}. Please answer the questions again.")

    _print_result(outcome.result)
    return 0


def _ask_questions(outcome: TurnOutcome, ask: Callable[[str], str]) -> List[str]:
    answers = []
    total = len(outcome.questions)
    for number, question in enumerate(outcome.questions, start=1):
        answer = ""
        while not answer.strip():
            answer = ask(f"\n[{number}/{total}] {question.question}\n> ")
        answers.append(answer)
    return answers


async def _answer_with_retry(manager: SessionManager, session_id: str, answers: List[str]) -> TurnOutcome:
    attempt = 0
    while True:
        try:
            return await manager.answer(session_id, answers)
        except LLMResponseError as exc:
            attempt += 1
            if attempt > MAX_TURN_RETRIES:
                raise
            LOGGER.warning("Unusable LLM response (%s); retrying %d/%d", exc, attempt, MAX_TURN_RETRIES)


def _print_result(result: ClassificationResult | None) -> None:
    if result is None:
        return
    print("\nClassification")
    print("=" * 60)
    print(f"Category:    {result.category.value}")
    print(f"Confidence:  {result.confidence:.2f}")
    print(f"Finished by: {result.terminated_by.value}")
    if result.needs_review:
        print("Status:      flagged for manual review")
    print(f"\n{result.rationale}")
    if result.future_opportunities:
        print(f"\nFuture opportunities: {result.future_opportunities}")
    evaluation = result.matrix_evaluation
    if evaluation is not None and evaluation.triggered_rules:
        print(f"\nDecision matrix v{evaluation.matrix_version} rules triggered:")
        for rule in evaluation.triggered_rules:
            print(f"  - {rule.rule_name}")
    for warning in evaluation.warnings if evaluation is not None else ():
        print(f"Warning: {warning}")


def _run_show(config: Config, session_id: str) -> int:
    record = SessionStore(config.data_dir).load_session(session_id)
    print(record.model_dump_json(indent=2))
    return 0


def _run_feedback(config: Config, session_id: str, confirm: bool, correct: str | None) -> int:
    store = SessionStore(config.data_dir)
    record = store.record_feedback(session_id, confirmed=confirm, corrected_category=correct)
    AuditLog(config.data_dir).record(session_id, "feedback", record.feedback.model_dump(mode="json"))
    print("Feedback recorded.")
    return 0


def _run_matrix(config: Config) -> int:
    matrix = config.decision_matrix
    if matrix is None:
        print(f"No decision matrix configured in {config.config_dir}")
        return 1

    print(f"Decision matrix v{matrix.version}{'' if matrix.active else ' (inactive)'}")
    print("=" * 60)
    for rule in matrix.active_rules():
        conditions = " AND ".join(f"{c.attribute} {c.operator} {c.value!r}" for c in rule.conditions)
        target = rule.action.target_category
        print(f"[{rule.priority:>3}] {rule.name}: {rule.action.type}" + (f" -> {target}" if target else ""))
        if conditions:
            print(f"      when {conditions}")
    return 0


if __name__ == "__main__":
    raise SystemExit(cli())
