"""Rare-earth news forecast pipeline entry point.

Usage:
    python run_pipeline.py
    SKIP_FETCH=true python run_pipeline.py   # prediction-only replay

Loads config.yaml, builds PipelineSettings from config + environment, runs
PipelineEngine (or replays the latest snapshot), and reports success/failure
to stdout and the pipeline log.
"""

import sys
from dotenv import load_dotenv

load_dotenv()  # must precede semanticast imports so env vars are available at module load

from semanticast.core.config import build_settings, load_config  # noqa: E402
from semanticast.core.errors import ConfigError, NoPriorSnapshot, SnapshotFormatError  # noqa: E402
from semanticast.core.logger import logger  # noqa: E402
from semanticast.pipeline.engine import PipelineEngine  # noqa: E402


def main() -> int:
    """Run the pipeline. Returns 0 on success, 1 on failure."""
    try:
        settings = build_settings(load_config()).validate()
    except (FileNotFoundError, ValueError, ConfigError) as exc:
        logger.error(f"run_pipeline: invalid configuration: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        engine = PipelineEngine(settings)
        result = engine.predict_only() if settings.skip_fetch else engine.run()
    except (NoPriorSnapshot, SnapshotFormatError, ConfigError) as exc:
        logger.error(f"run_pipeline: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:
        logger.error(f"run_pipeline: PipelineEngine raised: {exc}", exc_info=True)
        print(f"ERROR: pipeline failed — {exc}", file=sys.stderr)
        return 1

    forecast = result.forecast
    mode = "replayed" if result.replayed else "written"
    print(
        f"SUCCESS: snapshot {mode} at {result.snapshot_path} — "
        f"{result.snapshot.total_relevant}/{result.snapshot.total_articles} relevant, "
        f"14d forecast {forecast.predicted_change_percent:+.2f}% "
        f"(target {forecast.price_target:.2f} USD/kg, confidence {forecast.confidence:.3f})"
    )
    logger.info(f"run_pipeline: completed — {mode} {result.snapshot_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
