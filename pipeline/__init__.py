"""
Daily weather ETL pipeline.

This package contains the stages that move weather observations from the
upstream API through the raw, staging and warehouse tiers:

Modules:
    tracking: Execution tracker (daily admission gate, execution log lifecycle)
    retry: Fixed-delay retry orchestrator around one stage
    reports: Notification subjects and bodies
    runner: The four stages and run_stages()
    scheduler: APScheduler cron job for the full daily run
    cli: argparse entry point used by scripts/run_etl.py

Subpackages:
    extractors: Weather API client and policy-aware extractor
    loaders: Extract file -> raw tables, staging -> warehouse
    transformers: Raw -> typed, deduplicated staging records

Architecture:
    extract -> load-staging -> transform -> load-warehouse

    Each stage is gated by the execution log (at most one success per
    process per day), runs under its own execution record and writes in a
    single transaction that is rolled back on error.

Usage:
    from pipeline.runner import run_stages, STAGES
    results = await run_stages(STAGES)

Error Handling:
    Stage failures propagate to the RetryOrchestrator. NonRetryableError
    subclasses end the run at once; anything else is retried after a fixed
    delay until the attempts are exhausted.
"""

__all__ = [
    "ExecutionTracker",
    "RetryOrchestrator",
    "StageAttempt",
    "WeatherAPIClient",
    "WeatherExtractor",
    "StagingLoader",
    "TransformEngine",
    "WarehouseLoader",
    "PipelineRunner",
    "run_stages",
    "ETLScheduler",
]
