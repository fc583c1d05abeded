"""
autopv.pipeline.orchestrator
============================
PipelineOrchestrator: the DSAR run, stage by stage.

  Init → Exporting → Merging → Scrubbing → Classifying
       → Packaging → Archiving → Done

Failed is reachable from every non-terminal state. Stages run strictly in
sequence; each one hands an immutable result to the next.

Optional capabilities degrade instead of failing:
  - no Stripe key       → empty payments dataset, "stage_skipped" logged
  - Stripe export error → same as above, reason "failed: ..."
  - no reasoning key    → classification None, "stage_skipped" logged
  - classification error→ classification None, "classification_failed" logged
A missing GitHub token or archive passphrase is fatal.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from autopv.core.data_types import (
    ClassificationResult,
    PipelineState,
    RawDataset,
    RunReport,
)
from autopv.core.exceptions import (
    AutoPVError,
    ClassificationError,
    CredentialError,
    InvalidTransitionError,
    PackagingError,
    PreconditionError,
    ProviderError,
)
from autopv.core.logger import StructuredLogger
from autopv.core.retry import RetryPolicy
from autopv.config.pipeline_config import PipelineConfig
from autopv.credentials.store import (
    ARCHIVE_PW,
    GEMINI_API_KEY,
    GITHUB_TOKEN,
    STRIPE_SECRET_KEY,
    CredentialStore,
)
from autopv.classification.classifier import Classifier
from autopv.classification.field_paths import FieldPathExtractor
from autopv.classification.reasoning import BaseReasoningService, GeminiReasoningService
from autopv.packaging.archive import ArchiveCreator, remove_files
from autopv.packaging.cleanup import FileCleanup
from autopv.packaging.evidence_pack import EvidencePackBuilder, slugify
from autopv.privacy import PatternRegistry, Scrubber
from autopv.providers.base import BaseProvider
from autopv.providers.github import GitHubProvider
from autopv.providers.stripe import StripeProvider
from autopv.runtime.chunk_processor import ChunkProcessor
from autopv.runtime.resource_monitor import ResourceMonitor


S = PipelineState

TRANSITIONS: Dict[str, frozenset] = {
    S.INIT:        frozenset({S.EXPORTING}),
    S.EXPORTING:   frozenset({S.MERGING}),
    S.MERGING:     frozenset({S.SCRUBBING}),
    S.SCRUBBING:   frozenset({S.CLASSIFYING}),
    S.CLASSIFYING: frozenset({S.PACKAGING}),
    S.PACKAGING:   frozenset({S.ARCHIVING}),
    S.ARCHIVING:   frozenset({S.DONE}),
    S.DONE:        frozenset(),
    S.FAILED:      frozenset(),
}

# Stage order, used for progress reporting
_STAGES = (S.EXPORTING, S.MERGING, S.SCRUBBING, S.CLASSIFYING, S.PACKAGING, S.ARCHIVING)

EMPTY_STRIPE_DATASET: Dict[str, list] = {"customers": [], "charges": [], "methods": []}

ProviderFactory  = Callable[[str], BaseProvider]
ReasoningFactory = Callable[[str], BaseReasoningService]


def can_transition(current: str, target: str) -> bool:
    """True when `target` is reachable from `current` in one step."""
    if target == S.FAILED:
        return current not in S.TERMINAL
    return target in TRANSITIONS.get(current, frozenset())


class PipelineOrchestrator:
    """
    Runs one DSAR evidence export end to end.

    Parameters
    ----------
    config : str, dict, PipelineConfig or None
        Preset name, YAML path, raw dict, or a built PipelineConfig.
    credentials : mapping or None
        KEY → secret (GITHUB_TOKEN, STRIPE_SECRET_KEY, GEMINI_API_KEY,
        ARCHIVE_PW). Defaults to CredentialStore().resolve().
    provider_factories : dict or None
        name → callable(token) → BaseProvider. Overrides the built-in
        GitHub / Stripe clients (tests inject fakes here).
    reasoning_factory : callable or None
        callable(api_key) → BaseReasoningService. Defaults to Gemini.
    logger : StructuredLogger or None
        Run logger shared by every component.
    memory_reader : callable or None
        Passed to ResourceMonitor.
    sleep : callable
        Back-off sleep used by the retry policies.

    Usage
    -----
    orchestrator = PipelineOrchestrator("default", credentials={...})
    report = orchestrator.run("user@example.com", scope="my-org")
    report.state                # "Done"
    report.archive_result.archive_path
    """

    def __init__(
        self,
        config: Union[str, Dict[str, Any], PipelineConfig, None] = None,
        credentials: Optional[Mapping[str, Optional[str]]] = None,
        provider_factories: Optional[Dict[str, ProviderFactory]] = None,
        reasoning_factory: Optional[ReasoningFactory] = None,
        logger: Optional[StructuredLogger] = None,
        memory_reader: Optional[Callable[[], float]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config if isinstance(config, PipelineConfig) else PipelineConfig(config)
        self._credentials = dict(
            credentials if credentials is not None else CredentialStore().resolve()
        )
        self._logger        = logger or StructuredLogger(name="pipeline")
        self._memory_reader = memory_reader
        self._sleep         = sleep

        self._provider_factories: Dict[str, ProviderFactory] = {
            "github": self._github_provider,
            "stripe": self._stripe_provider,
        }
        self._provider_factories.update(provider_factories or {})
        self._reasoning_factory = reasoning_factory or self._gemini_service

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    # ── Public API ────────────────────────────────────────────────────────────

    def run(self, subject: str, scope: Optional[str] = None) -> RunReport:
        """Synchronous entry point. Must not be called from a running event loop."""
        return asyncio.run(self.run_async(subject, scope))

    async def run_async(self, subject: str, scope: Optional[str] = None) -> RunReport:
        """
        Execute every stage for `subject` (an email or login).

        Returns
        -------
        RunReport
            state is Done or Failed. On Failed, `error` is
            "[<State>] <message>" naming the state that failed.
            Never raises for stage failures.
        """
        cfg = self.config
        report = RunReport(subject=subject, transitions=[S.INIT])
        monitor = ResourceMonitor(
            memory_reader=self._memory_reader,
            logger=self._logger.child("resources"),
            **cfg.resource_config(),
        ).start()
        self._logger.log("run_started", scope=scope, output_dir=cfg.output_dir)

        try:
            # Required before any stage starts; Packaging depends on it
            passphrase = self._credentials.get(ARCHIVE_PW)
            if not passphrase:
                raise PreconditionError(
                    "Archive passphrase required for secure delivery "
                    f"(set {ARCHIVE_PW} or run `autopv login`)",
                    details={"credential": ARCHIVE_PW},
                )

            # ── Exporting ──────────────────────────────────────────────────
            self._enter(report, S.EXPORTING, monitor)
            providers = self._export(subject, scope, report)
            monitor.request_reclamation()

            # ── Merging ────────────────────────────────────────────────────
            self._enter(report, S.MERGING, monitor)
            report.dataset = RawDataset(subject=subject, scope=scope, providers=providers)
            merged = report.dataset.merged()

            # ── Scrubbing ──────────────────────────────────────────────────
            self._enter(report, S.SCRUBBING, monitor)
            scrubber = Scrubber(
                registry=PatternRegistry(**cfg.scrubber_config()),
                max_depth=cfg.scrub_max_depth,
                logger=self._logger.child("scrubber"),
            )
            processor = ChunkProcessor(
                monitor=monitor,
                stage=S.SCRUBBING,
                logger=self._logger.child("chunks"),
                **cfg.chunking_config(),
            )
            report.scrub_result = await scrubber.scrub_streaming(merged, processor)
            del merged
            monitor.request_reclamation()

            # ── Classifying ────────────────────────────────────────────────
            self._enter(report, S.CLASSIFYING, monitor)
            report.classification = self._classify(report)
            monitor.request_reclamation()

            # ── Packaging ──────────────────────────────────────────────────
            self._enter(report, S.PACKAGING, monitor)
            builder = EvidencePackBuilder(cfg.output_dir, logger=self._logger.child("pack"))
            report.pack_result = builder.build(
                report.dataset, report.scrub_result, report.classification
            )
            if not report.pack_result.success:
                raise PackagingError(report.pack_result.error or "Evidence pack failed")

            # ── Archiving ──────────────────────────────────────────────────
            self._enter(report, S.ARCHIVING, monitor)
            creator = ArchiveCreator(
                cfg.output_dir, passphrase, logger=self._logger.child("archive")
            )
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
            report.archive_result = creator.create(
                report.pack_result.files_created,
                f"evidence_pack_{slugify(subject)}_{stamp}",
            )
            if not report.archive_result.success:
                raise PackagingError(report.archive_result.error or "Archive creation failed")

            self._cleanup(report)
            self._enter(report, S.DONE, monitor)

        except Exception as exc:
            failed_in = report.state
            message = exc.message if isinstance(exc, AutoPVError) else f"{type(exc).__name__}: {exc}"
            report.error = f"[{failed_in}] {message}"
            self._logger.error(
                "pipeline_failed",
                stage=failed_in,
                error=report.error,
                error_type=type(exc).__name__,
            )
            self._enter(report, S.FAILED, monitor)

        finally:
            report.resources = monitor.stop()

        self._logger.log(
            "run_finished",
            state=report.state,
            degraded=report.degraded,
            skipped=[s["component"] for s in report.skipped],
        )
        return report

    # ── Stages ────────────────────────────────────────────────────────────────

    def _export(self, subject: str, scope: Optional[str], report: RunReport) -> Dict[str, Any]:
        github_token = self._credentials.get(GITHUB_TOKEN)
        if not github_token:
            raise PreconditionError(
                f"GitHub token required for data export (set {GITHUB_TOKEN} or run `autopv login`)",
                details={"credential": GITHUB_TOKEN},
            )

        providers: Dict[str, Any] = {}
        providers["github"] = self._provider_factories["github"](github_token).export(subject, scope)

        stripe_key = self._credentials.get(STRIPE_SECRET_KEY)
        if stripe_key:
            try:
                providers["stripe"] = self._provider_factories["stripe"](stripe_key).export(subject, scope)
            except ProviderError as exc:
                # CredentialError included: a revoked key degrades like an outage
                providers["stripe"] = {k: [] for k in EMPTY_STRIPE_DATASET}
                self._skip(report, S.EXPORTING, "stripe", f"failed: {exc.message}")
        else:
            providers["stripe"] = {k: [] for k in EMPTY_STRIPE_DATASET}
            self._skip(report, S.EXPORTING, "stripe", f"no {STRIPE_SECRET_KEY} configured")

        return providers

    def _classify(self, report: RunReport) -> Optional[ClassificationResult]:
        cfg = self.config
        if not cfg.classifier_enabled:
            self._skip(report, S.CLASSIFYING, "classifier", "disabled in config")
            return None

        api_key = self._credentials.get(GEMINI_API_KEY)
        if not api_key:
            self._skip(report, S.CLASSIFYING, "classifier", f"no {GEMINI_API_KEY} configured")
            return None

        logger = self._logger.child("classifier")
        try:
            try:
                service = self._reasoning_factory(api_key)
            except Exception as exc:
                raise ClassificationError(
                    f"Reasoning service unavailable: {type(exc).__name__}: {exc}",
                    details={"error_type": type(exc).__name__},
                ) from exc
            classifier = Classifier(
                service=service,
                extractor=FieldPathExtractor(cfg.max_field_depth),
                retry=RetryPolicy(
                    sleep=self._sleep,
                    logger=logger,
                    **cfg.classifier_retry,
                ),
                logger=logger,
                **cfg.classifier_config(),
            )
            return classifier.classify(report.scrub_result.scrubbed_data)
        except ClassificationError as exc:
            self._logger.error(
                "classification_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self._skip(report, S.CLASSIFYING, "classifier", f"failed: {exc.message}")
            return None

    def _cleanup(self, report: RunReport) -> None:
        cfg = self.config
        if cfg.remove_loose_artifacts:
            removed = remove_files(report.pack_result.files_created, logger=self._logger)
            self._logger.log("loose_artifacts_removed", count=len(removed))

        report.cleanup_result = FileCleanup(
            cfg.output_dir,
            max_age_hours=cfg.retention_hours,
            logger=self._logger.child("cleanup"),
        ).cleanup_old_files()

    # ── State machine ─────────────────────────────────────────────────────────

    def _enter(self, report: RunReport, target: str, monitor: ResourceMonitor) -> None:
        current = report.state
        if not can_transition(current, target):
            raise InvalidTransitionError(
                f"Cannot move from {current} to {target}",
                details={"from": current, "to": target},
            )
        report.state = target
        report.transitions.append(target)
        if target in _STAGES:
            monitor.update_progress(target, _STAGES.index(target) + 1, len(_STAGES))
        self._logger.log("transition", from_state=current, to_state=target)

    def _skip(self, report: RunReport, stage: str, component: str, reason: str) -> None:
        entry = {"stage": stage, "component": component, "reason": reason}
        report.skipped.append(entry)
        self._logger.warn("stage_skipped", **entry)

    # ── Default collaborators ─────────────────────────────────────────────────

    def _provider_retry(self, logger: StructuredLogger) -> RetryPolicy:
        return RetryPolicy(
            retry_on=(ProviderError,),
            give_up_on=(CredentialError,),
            sleep=self._sleep,
            logger=logger,
            **self.config.provider_retry,
        )

    def _github_provider(self, token: str) -> BaseProvider:
        logger = self._logger.child("github")
        return GitHubProvider(
            token,
            max_events=self.config.github_max_events,
            max_audit=self.config.github_max_audit,
            retry=self._provider_retry(logger),
            timeout=self.config.provider_timeout,
            logger=logger,
        )

    def _stripe_provider(self, token: str) -> BaseProvider:
        logger = self._logger.child("stripe")
        return StripeProvider(
            token,
            max_records=self.config.stripe_max_records,
            retry=self._provider_retry(logger),
            timeout=self.config.provider_timeout,
            logger=logger,
        )

    def _gemini_service(self, api_key: str) -> BaseReasoningService:
        return GeminiReasoningService(api_key, model_name=self.config.model)

    def __repr__(self) -> str:
        return f"PipelineOrchestrator(config={self.config!r})"
